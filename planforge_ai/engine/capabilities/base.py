from __future__ import annotations

"""Capability protocol and the function adapter.

A capability is the concrete execution unit addressed by ``PlanStep.agent_name``
and ``WorkflowNode.agent_name``.

The executors resolve names through a ``CapabilityRegistry`` and call
``execute`` with the step input: the accumulated context overlaid with the
step's own arguments.

Capabilities should:

- return a ``StepResult``; ``details`` are merged into the shared context,
- raise (or return a failure result) when they cannot do their work; the
  executor routes both through remediation,
- not decide approvals themselves; ``requires_approval`` is read by the
  sequential executor before invocation.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, runtime_checkable

from ..schemas.domain import StepResult


@runtime_checkable
class Capability(Protocol):
    """Protocol for capability implementations.

    ``can_handle(context) -> bool`` may be provided as well; it is only consulted
    by ``CapabilityRegistry.candidates``.
    """

    name: str
    description: str
    requires_approval: bool

    async def execute(self, context: Dict[str, Any]) -> StepResult: ...


@dataclass(frozen=True)
class FunctionCapability:
    """
    Adapt an async function to the ``Capability`` protocol.

    The function receives the step input and may return a ``StepResult``, a
    ``dict`` (used as success ``details``), or ``None`` (an empty success).
    """

    name: str
    func: Callable[[Dict[str, Any]], Awaitable[Any]]
    description: str = ""
    requires_approval: bool = False
    predicate: Optional[Callable[[Dict[str, Any]], bool]] = None

    async def execute(self, context: Dict[str, Any]) -> StepResult:
        out = await self.func(context)
        if isinstance(out, StepResult):
            return out
        if out is None:
            return StepResult.success(self.name, summary=f"{self.name} completed")
        if isinstance(out, dict):
            return StepResult.success(self.name, summary=f"{self.name} completed", details=out)
        return StepResult.success(self.name, summary=str(out), details={"result": out})

    def can_handle(self, context: Dict[str, Any]) -> bool:
        if self.predicate is None:
            return True
        return bool(self.predicate(context))
