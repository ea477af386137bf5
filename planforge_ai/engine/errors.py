from __future__ import annotations

"""Error taxonomy of the execution engine.

Every error raised by the engine derives from ``EngineError`` so callers can
catch engine failures as a group while still dispatching on the concrete type:

- ``PlanningError``: the planner or the remediation advisor could not obtain
  valid structured output. Carries the raw backend output for postmortem.
- ``CapabilityNotFound`` / ``CapabilityFailure``: step-local failures. Both are
  eligible for remediation.
- ``PersistenceFailure``: the execution state store failed. Fatal.
- ``DuplicatePipelineError`` / ``PipelineNotFound``: pipeline registry
  configuration and lookup errors.
- ``ExecutionFailed`` / ``RecoveryBudgetExhausted``: terminal execution
  failures raised by the sequential executor after the state was persisted as
  ``failed``.
- ``ExecutionCancelled``: the execution was cancelled while the caller awaited it.
- ``ExecutionSuperseded``: another writer moved the stored execution to a
  different status while this process was driving it.
- ``ReasoningUnavailable``: the reasoning backend timed out, exhausted its
  retries, or the circuit breaker is open.
"""

from typing import TYPE_CHECKING, Any, Optional, Sequence

if TYPE_CHECKING:
    from .schemas.domain import StepResult


class EngineError(Exception):
    """Base class for all engine errors."""


class PlanningError(EngineError):
    """Structured output could not be obtained after the bounded repair attempt."""

    def __init__(self, message: str, *, raw_output: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw_output = raw_output


class DuplicateCapabilityError(EngineError, ValueError):
    """Two capabilities were registered under the same name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"capability already registered: {name!r}")
        self.name = name


class CapabilityNotFound(EngineError, KeyError):
    """A step referenced an unregistered capability."""

    def __init__(self, name: str) -> None:
        super().__init__(f"capability not found: {name!r}")
        self.name = name

    def __str__(self) -> str:
        return str(self.args[0])


class CapabilityFailure(EngineError):
    """A capability raised during ``execute`` or reported a failure result."""

    def __init__(self, agent_name: str, message: str, *, result: Optional["StepResult"] = None) -> None:
        super().__init__(message)
        self.agent_name = agent_name
        self.result = result


class PersistenceFailure(EngineError):
    """Saving or loading execution state failed."""


class ExecutionNotFound(EngineError, LookupError):
    """No execution state exists for the given id."""

    def __init__(self, execution_id: str) -> None:
        super().__init__(f"execution not found: {execution_id}")
        self.execution_id = execution_id


class ExecutionFailed(EngineError):
    """An execution terminated in the ``failed`` status."""

    def __init__(
        self,
        execution_id: str,
        reason: str,
        *,
        results: Sequence["StepResult"] = (),
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(f"execution {execution_id} failed: {reason}")
        self.execution_id = execution_id
        self.reason = reason
        self.results = list(results)
        self.cause = cause


class RecoveryBudgetExhausted(ExecutionFailed):
    """A step kept failing after all remediation attempts were spent."""


class ExecutionCancelled(EngineError):
    """The execution was cancelled on request."""

    def __init__(self, execution_id: str) -> None:
        super().__init__(f"execution {execution_id} was cancelled")
        self.execution_id = execution_id


class ReasoningUnavailable(EngineError):
    """The reasoning backend could not produce a response."""

    def __init__(self, message: str, *, last_error: Any = None) -> None:
        super().__init__(message)
        self.last_error = last_error


class ExecutionSuperseded(EngineError):
    """The stored execution left the status this drive expected.

    Raised inside a drive when a compare-and-save is rejected, e.g. because a
    recovery sweep or a cancel already finalized the execution.
    """

    def __init__(self, execution_id: str) -> None:
        super().__init__(f"execution {execution_id} was changed by another writer")
        self.execution_id = execution_id


class DuplicatePipelineError(EngineError, ValueError):
    """Two pipelines were registered under the same name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"pipeline already registered: {name!r}")
        self.name = name


class PipelineNotFound(EngineError, KeyError):
    """No pipeline is registered under the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"pipeline not found: {name!r}")
        self.name = name

    def __str__(self) -> str:
        return str(self.args[0])
