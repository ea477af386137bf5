from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set
from uuid import uuid4

from pydantic import ConfigDict, Field

from .base import BaseSchema

APPROVAL_GATE_AGENT = "human-in-the-loop-gate"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    running = "running"
    pending_approval = "pending_approval"
    resumed_after_approval = "resumed_after_approval"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_in_flight(self) -> bool:
        return self in (ExecutionStatus.running, ExecutionStatus.resumed_after_approval)


TERMINAL_STATUSES = frozenset({ExecutionStatus.completed, ExecutionStatus.failed, ExecutionStatus.cancelled})


class ResultStatus(str, Enum):
    success = "SUCCESS"
    failure = "FAILURE"


class RemediationAction(str, Enum):
    retry_with_fix = "RETRY_WITH_FIX"
    fail_gracefully = "FAIL_GRACEFULLY"


class PlanStep(BaseSchema):
    """One step of a sequential plan: which capability to run and with what."""

    model_config = ConfigDict(frozen=True)

    agent_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class WorkflowNode(BaseSchema):
    """A node of a workflow graph; ``dependencies`` lists node ids."""

    id: str
    agent_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    dependencies: Set[str] = Field(default_factory=set)


class StepResult(BaseSchema):
    """Outcome of a capability invocation."""

    agent_name: str
    status: ResultStatus = ResultStatus.success
    summary: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)
    node_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ResultStatus.success

    @classmethod
    def success(cls, agent_name: str, summary: str = "", details: Optional[Dict[str, Any]] = None) -> "StepResult":
        return cls(agent_name=agent_name, status=ResultStatus.success, summary=summary, details=dict(details or {}))

    @classmethod
    def failure(cls, agent_name: str, summary: str, details: Optional[Dict[str, Any]] = None) -> "StepResult":
        return cls(agent_name=agent_name, status=ResultStatus.failure, summary=summary, details=dict(details or {}))


class RemediationPlan(BaseSchema):
    action: RemediationAction
    justification: str = ""
    modified_arguments: Optional[Dict[str, Any]] = None


class ExecutionState(BaseSchema):
    """Durable record of one sequential plan execution.

    The owning executor is the only writer. ``recovery_attempts`` counts the
    remediation retries spent on the step at ``current_step_index`` and is reset
    once that step succeeds.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    session_id: Optional[str] = None

    status: ExecutionStatus = ExecutionStatus.running
    plan_steps: List[PlanStep] = Field(default_factory=list)
    accumulated_context: Dict[str, Any] = Field(default_factory=dict)
    execution_history: List[StepResult] = Field(default_factory=list)
    current_step_index: int = 0
    recovery_attempts: int = 0
    error: Optional[str] = None

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @property
    def current_step(self) -> Optional[PlanStep]:
        if 0 <= self.current_step_index < len(self.plan_steps):
            return self.plan_steps[self.current_step_index]
        return None

    @property
    def is_finished(self) -> bool:
        return self.current_step_index >= len(self.plan_steps)
