from __future__ import annotations

from typing import List

import pytest

from planforge_ai.engine.errors import PlanningError
from planforge_ai.engine.planning.steps import is_retry, topological_order
from planforge_ai.engine.schemas.domain import RemediationAction, RemediationPlan, WorkflowNode


def _node(node_id: str, deps: List[str] = ()) -> WorkflowNode:
    return WorkflowNode(id=node_id, agent_name=f"cap-{node_id}", dependencies=set(deps))


def test_topological_order_respects_dependencies_and_input_order() -> None:
    nodes = [_node("c", ["a", "b"]), _node("a"), _node("b"), _node("d", ["c"])]
    ordered = [n.id for n in topological_order(nodes)]
    assert ordered == ["a", "b", "c", "d"]


def test_topological_order_handles_long_chains_iteratively() -> None:
    nodes = [_node("n0")] + [_node(f"n{i}", [f"n{i - 1}"]) for i in range(1, 5000)]
    ordered = topological_order(list(reversed(nodes)))
    assert ordered[0].id == "n0" and ordered[-1].id == "n4999"


@pytest.mark.parametrize(
    "nodes, message",
    [
        ([_node("a"), _node("a")], "duplicate"),
        ([_node("a", ["ghost"])], "unknown"),
        ([_node("a", ["a"])], "itself"),
        ([_node("a", ["c"]), _node("b", ["a"]), _node("c", ["b"]), _node("d")], "cycle"),
    ],
)
def test_topological_order_rejects_invalid_graphs(nodes: List[WorkflowNode], message: str) -> None:
    with pytest.raises(PlanningError, match=message):
        topological_order(nodes)


def test_is_retry() -> None:
    assert is_retry(RemediationPlan(action=RemediationAction.retry_with_fix))
    assert not is_retry(RemediationPlan(action=RemediationAction.fail_gracefully, justification="no"))
