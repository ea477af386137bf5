"""Plan and workflow execution engine.

This package contains the engine room of PlanForge-AI.

Design overview
---------------

Work is expressed as *plans* over pluggable, explicitly registered
*capabilities*:

- A sequential plan is an ordered list of ``PlanStep``. It is executed by
  ``engine.runtime.SequentialExecutor``, a persisted LangGraph state machine
  with human-in-the-loop approval gates and automatic error remediation.
- A workflow is a dependency graph of ``WorkflowNode``. It is executed by
  ``engine.runtime.GraphExecutor``, which runs independent branches
  concurrently.

Plans are produced from a goal by ``engine.planning.StructuredPlanner`` and
failed steps are diagnosed by ``engine.remediation.ErrorRemediationAdvisor``;
both talk to the reasoning backend through ``engine.reasoning.ReasoningClient``.

Typical usage
-------------

Most applications should use ``engine.service.ExecutionService`` (built with
``engine.factory.build_service``):

1. ``submit`` a goal or a plan.
2. Poll ``get_status`` or ``wait`` for the outcome.
3. If the execution is ``pending_approval``, ``resume`` it once approved.
"""

from .capabilities import Capability, CapabilityRegistry, FunctionCapability
from .errors import (
    CapabilityFailure,
    CapabilityNotFound,
    DuplicateCapabilityError,
    EngineError,
    ExecutionCancelled,
    ExecutionFailed,
    ExecutionNotFound,
    PersistenceFailure,
    PlanningError,
    ReasoningUnavailable,
    RecoveryBudgetExhausted,
)
from .schemas.domain import (
    ExecutionState,
    ExecutionStatus,
    PlanStep,
    RemediationAction,
    RemediationPlan,
    ResultStatus,
    StepResult,
    WorkflowNode,
)
from .service import ExecutionService, ExecutionServiceDeps

__all__ = [
    "Capability",
    "CapabilityFailure",
    "CapabilityNotFound",
    "CapabilityRegistry",
    "DuplicateCapabilityError",
    "EngineError",
    "ExecutionCancelled",
    "ExecutionFailed",
    "ExecutionNotFound",
    "ExecutionService",
    "ExecutionServiceDeps",
    "ExecutionState",
    "ExecutionStatus",
    "FunctionCapability",
    "PersistenceFailure",
    "PlanStep",
    "PlanningError",
    "ReasoningUnavailable",
    "RecoveryBudgetExhausted",
    "RemediationAction",
    "RemediationPlan",
    "ResultStatus",
    "StepResult",
    "WorkflowNode",
]
