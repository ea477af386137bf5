from __future__ import annotations

"""Dependency-graph (DAG) executor.

``GraphExecutor`` runs ``WorkflowNode`` graphs with as much parallelism as the
dependencies allow.

Scheduling
----------

- The graph is validated up front (duplicate ids, unknown dependencies and
  cycles raise ``PlanningError``).
- A node becomes ready once every dependency has succeeded and its details
  were merged into the shared context. Ready nodes are dispatched as asyncio
  tasks; an ``asyncio.Semaphore`` bounds how many run at once.
- A failed node (raised, unknown capability, or failure result) marks all of
  its transitive dependents as skipped. Independent branches keep running.

Results are returned in completion order, skip markers included. There is no
remediation and no approval gate in graph mode.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Set

from ..capabilities import CapabilityRegistry
from ..planning.steps import topological_order
from ..schemas.domain import ResultStatus, StepResult, WorkflowNode

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4


class SharedContext:
    """Context shared by the nodes of one graph run.

    Concurrent node tasks only read snapshots and write through ``upsert``.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = dict(initial or {})
        self._lock = asyncio.Lock()

    async def snapshot(self) -> Dict[str, Any]:
        async with self._lock:
            return dict(self._data)

    async def upsert(self, values: Dict[str, Any]) -> None:
        async with self._lock:
            self._data.update(values)


def skip_marker(node: WorkflowNode, failed_id: str) -> StepResult:
    reason = f"dependency '{failed_id}' failed"
    return StepResult(
        agent_name=node.agent_name,
        status=ResultStatus.failure,
        summary=f"skipped: {reason}",
        details={"skipped": True, "reason": reason},
        node_id=node.id,
    )


class GraphExecutor:
    """Execute a workflow graph of capabilities concurrently."""

    def __init__(self, *, capabilities: CapabilityRegistry, max_concurrency: int = DEFAULT_MAX_CONCURRENCY) -> None:
        """
        Initialize the GraphExecutor.

        Args:
            capabilities: Registry used to resolve ``WorkflowNode.agent_name``.
            max_concurrency: Upper bound on simultaneously running nodes.
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._capabilities = capabilities
        self._max_concurrency = max_concurrency

    def validate(self, nodes: Sequence[WorkflowNode]) -> List[WorkflowNode]:
        """Return the nodes in topological order or raise ``PlanningError``."""
        return topological_order(nodes)

    async def execute(
        self,
        nodes: Sequence[WorkflowNode],
        initial_context: Optional[Dict[str, Any]] = None,
    ) -> List[StepResult]:
        """
        Run every node of the graph whose dependencies succeed.

        Args:
            nodes: The workflow graph.
            initial_context: Seed of the shared context.

        Returns:
            One result per node in completion order; nodes downstream of a
            failure get a skip marker instead.

        Raises:
            PlanningError: If the graph is invalid.
        """
        ordered = self.validate(nodes)
        by_id: Dict[str, WorkflowNode] = {n.id: n for n in ordered}
        dependents: Dict[str, List[str]] = {n.id: [] for n in ordered}
        remaining: Dict[str, int] = {}
        for node in ordered:
            remaining[node.id] = len(node.dependencies)
            for dep in node.dependencies:
                dependents[dep].append(node.id)

        context = SharedContext(initial_context)
        semaphore = asyncio.Semaphore(self._max_concurrency)
        ready: List[str] = [n.id for n in ordered if remaining[n.id] == 0]
        running: Dict[asyncio.Task[StepResult], str] = {}
        skipped: Set[str] = set()
        results: List[StepResult] = []

        logger.info(f"Executing workflow with {len(ordered)} node(s), max concurrency {self._max_concurrency}")
        try:
            while ready or running:
                for node_id in ready:
                    task = asyncio.create_task(
                        self._run_node(by_id[node_id], context, semaphore),
                        name=f"workflow-node-{node_id}",
                    )
                    running[task] = node_id
                ready = []

                done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    node_id = running.pop(task)
                    result = task.result()
                    results.append(result)
                    if result.ok:
                        for child in dependents[node_id]:
                            remaining[child] -= 1
                            if remaining[child] == 0 and child not in skipped:
                                ready.append(child)
                        continue

                    worklist = [node_id]
                    while worklist:
                        current = worklist.pop()
                        for child in dependents[current]:
                            if child in skipped:
                                continue
                            skipped.add(child)
                            results.append(skip_marker(by_id[child], node_id))
                            worklist.append(child)
                    logger.warning(f"Workflow node '{node_id}' failed; skipped dependents: {sorted(skipped)}")
        except asyncio.CancelledError:
            for task in running:
                task.cancel()
            await asyncio.gather(*running, return_exceptions=True)
            logger.info(f"Workflow cancelled with {len(running)} node(s) in flight")
            raise

        logger.info(
            f"Workflow finished: {sum(1 for r in results if r.ok)} succeeded, "
            f"{sum(1 for r in results if not r.ok)} failed or skipped"
        )
        return results

    async def _run_node(
        self,
        node: WorkflowNode,
        context: SharedContext,
        semaphore: asyncio.Semaphore,
    ) -> StepResult:
        async with semaphore:
            cap = self._capabilities.lookup(node.agent_name)
            if cap is None:
                logger.warning(f"Workflow node '{node.id}': capability '{node.agent_name}' is not registered")
                return StepResult.failure(
                    node.agent_name,
                    summary=f"capability not found: {node.agent_name!r}",
                    details={"error": "CapabilityNotFound"},
                ).model_copy(update={"node_id": node.id})

            step_input = await context.snapshot()
            step_input.update(node.arguments)
            try:
                result = await cap.execute(step_input)
            except Exception as e:
                logger.warning(f"Workflow node '{node.id}' ({node.agent_name}) raised: {e}")
                return StepResult.failure(
                    node.agent_name,
                    summary=str(e) or type(e).__name__,
                    details={"error": type(e).__name__},
                ).model_copy(update={"node_id": node.id})

            result = result.model_copy(update={"node_id": node.id})
            if result.ok:
                await context.upsert(result.details)
            return result
