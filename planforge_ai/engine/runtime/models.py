from __future__ import annotations

"""Runtime dependency bundle and LangGraph state types.

The executors are dependency-injected.

- ``EngineDeps`` collects the repository, registry and advisor the executors need.
- ``_GraphState`` is the state passed between LangGraph nodes of the
  sequential executor.
"""

from dataclasses import dataclass
from typing import Optional, Required, TypedDict

from ..capabilities import CapabilityRegistry
from ..remediation import ErrorRemediationAdvisor
from ..repos import ExecutionStateRepository
from ..schemas.domain import ExecutionState, ExecutionStatus

# Statuses of an execution that must have a live owner driving it.
IN_FLIGHT_STATUSES = (ExecutionStatus.running, ExecutionStatus.resumed_after_approval)


@dataclass(frozen=True)
class EngineDeps:
    """Dependency bundle for ``SequentialExecutor`` and ``GraphExecutor``.

    - ``executions``: durable store for ``ExecutionState``.
    - ``capabilities``: registry used to resolve ``agent_name``.
    - ``advisor``: remediation advisor; without one every step failure is
      terminal.
    """

    executions: ExecutionStateRepository
    capabilities: CapabilityRegistry
    advisor: Optional[ErrorRemediationAdvisor] = None


class _GraphState(TypedDict):
    """LangGraph state for one drive of an execution.

    - ``execution``: the execution being driven; the graph nodes mutate it
      and persist it after every transition.
    - ``skip_approval``: one-shot flag set on resume and on remediation
      retries so the gated step is not paused again.
    - ``outcome``: routing signal written by the last node
      (``continue``/``pause``/``remediate``/``retry``/``finish``).
    - ``failure``: the exception of the last failed step, consumed by the
      ``remediate`` node.
    """

    execution: Required[ExecutionState]
    skip_approval: Required[bool]
    outcome: Required[str]
    failure: Required[Optional[BaseException]]
