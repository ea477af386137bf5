"""Schemas and DTOs for the execution engine."""

from .domain import (
    APPROVAL_GATE_AGENT,
    TERMINAL_STATUSES,
    ExecutionState,
    ExecutionStatus,
    PlanStep,
    RemediationAction,
    RemediationPlan,
    ResultStatus,
    StepResult,
    WorkflowNode,
)

__all__ = [
    "APPROVAL_GATE_AGENT",
    "TERMINAL_STATUSES",
    "ExecutionState",
    "ExecutionStatus",
    "PlanStep",
    "RemediationAction",
    "RemediationPlan",
    "ResultStatus",
    "StepResult",
    "WorkflowNode",
]
