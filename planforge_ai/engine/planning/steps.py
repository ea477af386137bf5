from __future__ import annotations

from collections import deque
from typing import Any, Dict, List, Sequence

from pydantic import TypeAdapter

from ..errors import PlanningError
from ..schemas.domain import PlanStep, RemediationAction, RemediationPlan, WorkflowNode
from .parsing import StructuredOutputParser

STEP_KEY_ALIASES: Dict[str, Sequence[str]] = {
    "agent_name": ("agent", "agentName", "tool", "toolName", "capability", "name"),
    "arguments": ("args", "params", "parameters", "input"),
}

NODE_KEY_ALIASES: Dict[str, Sequence[str]] = {
    "id": ("nodeId", "key", "stepId"),
    **STEP_KEY_ALIASES,
    "dependencies": ("dependsOn", "deps", "after", "requires"),
}

REMEDIATION_KEY_ALIASES: Dict[str, Sequence[str]] = {
    "action": ("decision", "verdict"),
    "justification": ("reason", "rationale", "explanation"),
    "modified_arguments": ("modifiedArgs", "fixedArguments", "newArguments", "arguments", "args"),
}


def _coerce_step(item: Dict[str, Any]) -> Dict[str, Any]:
    if item.get("arguments") is None:
        item["arguments"] = {}
    return item


def _coerce_node(item: Dict[str, Any]) -> Dict[str, Any]:
    item = _coerce_step(item)
    deps = item.get("dependencies")
    if deps is None:
        item["dependencies"] = []
    elif isinstance(deps, str):
        item["dependencies"] = [d.strip() for d in deps.split(",") if d.strip()]
    if "id" in item and not isinstance(item["id"], str):
        item["id"] = str(item["id"])
    return item


def _coerce_remediation(item: Dict[str, Any]) -> Dict[str, Any]:
    action = item.get("action")
    if isinstance(action, str):
        item["action"] = action.strip().upper().replace("-", "_").replace(" ", "_")
    if item.get("justification") is None:
        item["justification"] = ""
    return item


def plan_parser() -> StructuredOutputParser[List[PlanStep]]:
    return StructuredOutputParser(
        TypeAdapter(List[PlanStep]),
        many=True,
        wrapper_keys=("steps", "plan"),
        key_aliases=STEP_KEY_ALIASES,
        item_hook=_coerce_step,
    )


def workflow_parser() -> StructuredOutputParser[List[WorkflowNode]]:
    return StructuredOutputParser(
        TypeAdapter(List[WorkflowNode]),
        many=True,
        wrapper_keys=("workflow", "nodes", "steps", "plan"),
        key_aliases=NODE_KEY_ALIASES,
        item_hook=_coerce_node,
    )


def remediation_parser() -> StructuredOutputParser[RemediationPlan]:
    return StructuredOutputParser(
        TypeAdapter(RemediationPlan),
        key_aliases=REMEDIATION_KEY_ALIASES,
        item_hook=_coerce_remediation,
    )


def topological_order(nodes: Sequence[WorkflowNode]) -> List[WorkflowNode]:
    """Validate a workflow graph and return its nodes in dependency order.

    Uses Kahn's algorithm with an explicit queue; ties keep the input order.

    Raises:
        PlanningError: On duplicate node ids, dependencies on unknown ids, or cycles.
    """
    by_id: Dict[str, WorkflowNode] = {}
    for node in nodes:
        if node.id in by_id:
            raise PlanningError(f"duplicate workflow node id: {node.id!r}")
        by_id[node.id] = node

    dependents: Dict[str, List[str]] = {nid: [] for nid in by_id}
    remaining: Dict[str, int] = {}
    for node in nodes:
        missing = sorted(d for d in node.dependencies if d not in by_id)
        if missing:
            raise PlanningError(f"workflow node {node.id!r} depends on unknown node(s): {missing}")
        if node.id in node.dependencies:
            raise PlanningError(f"workflow node {node.id!r} depends on itself")
        remaining[node.id] = len(node.dependencies)
        for dep in node.dependencies:
            dependents[dep].append(node.id)

    queue = deque(n.id for n in nodes if remaining[n.id] == 0)
    ordered: List[WorkflowNode] = []
    while queue:
        nid = queue.popleft()
        ordered.append(by_id[nid])
        for child in dependents[nid]:
            remaining[child] -= 1
            if remaining[child] == 0:
                queue.append(child)

    if len(ordered) != len(by_id):
        cyclic = sorted(nid for nid, count in remaining.items() if count > 0)
        raise PlanningError(f"workflow contains a dependency cycle among nodes: {cyclic}")
    return ordered


def is_retry(plan: RemediationPlan) -> bool:
    return plan.action == RemediationAction.retry_with_fix
