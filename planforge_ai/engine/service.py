from __future__ import annotations

"""High-level control surface for executions.

``ExecutionService`` gives applications one object to plan, submit, observe
and control executions without wiring the planner and the executors by hand.

Workflow
--------

- ``submit``: plans the goal (or takes an explicit plan), persists a new
  execution and drives it in a background task. Returns the execution id
  immediately; callers poll ``get_status`` or ``wait`` for the outcome.
- ``run``: the synchronous flavour of ``submit``; returns the result list or
  raises the typed execution error.
- ``resume`` / ``cancel`` / ``get_status``: act on an execution by id.
- ``run_workflow``: plans (or takes) a dependency graph and runs it with the
  ``GraphExecutor``.
- ``run_pipeline`` / ``pipelines``: invoke a predefined pipeline by name.

``ExecutionService`` is intentionally thin: execution semantics live in the
executors.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .errors import PipelineNotFound
from .planning.planner import StructuredPlanner
from .runtime import GraphExecutor, PipelineExecutor, SequentialExecutor
from .schemas.domain import ExecutionStatus, PlanStep, StepResult, WorkflowNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionServiceDeps:
    """Dependency bundle for ``ExecutionService``.

    - ``executor``: drives sequential plans.
    - ``graph``: runs workflow graphs.
    - ``planner``: turns goals into plans; required only for goal-based calls.
    - ``pipelines``: runs named pipelines; required only for ``run_pipeline``.
    """

    executor: SequentialExecutor
    graph: GraphExecutor
    planner: Optional[StructuredPlanner] = None
    pipelines: Optional[PipelineExecutor] = None


class ExecutionService:
    """Plan, submit and control executions."""

    def __init__(self, *, deps: ExecutionServiceDeps) -> None:
        self._deps = deps
        self._tasks: Dict[str, asyncio.Task[List[StepResult]]] = {}

    @property
    def executor(self) -> SequentialExecutor:
        return self._deps.executor

    def _require_planner(self) -> StructuredPlanner:
        if self._deps.planner is None:
            raise ValueError("a planner is required to execute a goal; pass an explicit plan instead")
        return self._deps.planner

    async def _resolve_plan(
        self,
        goal: Optional[str],
        plan: Optional[Sequence[PlanStep]],
        context: Optional[Dict[str, Any]],
    ) -> List[PlanStep]:
        if (goal is None) == (plan is None):
            raise ValueError("exactly one of 'goal' or 'plan' must be given")
        if plan is not None:
            return list(plan)
        return await self._require_planner().create_plan(str(goal), context)

    async def submit(
        self,
        *,
        goal: Optional[str] = None,
        plan: Optional[Sequence[PlanStep]] = None,
        context: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> str:
        """Persist a new execution and drive it in the background.

        Returns
        -------
        str
            The execution id.

        Raises
        ------
        PlanningError
            When ``goal`` is given and no valid plan could be produced; no
            execution is created in that case.
        """
        steps = await self._resolve_plan(goal, plan, context)
        state, task = await self._deps.executor.start(steps, context, session_id)
        self._track(state.id, task)
        logger.info(f"Submitted execution {state.id} ({len(steps)} step(s))")
        return state.id

    async def run(
        self,
        *,
        goal: Optional[str] = None,
        plan: Optional[Sequence[PlanStep]] = None,
        context: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> List[StepResult]:
        """Plan and execute in the caller's task; returns the execution history."""
        steps = await self._resolve_plan(goal, plan, context)
        return await self._deps.executor.execute_plan(steps, context, session_id)

    async def resume(self, execution_id: str) -> None:
        """Resume a paused execution in the background.

        Raises ``ExecutionNotFound`` for unknown ids. Use ``wait`` to observe
        the outcome.
        """
        await self._deps.executor.get(execution_id)
        task = asyncio.create_task(self._deps.executor.resume(execution_id), name=f"resume-{execution_id}")
        self._track(execution_id, task)

    async def cancel(self, execution_id: str) -> bool:
        return await self._deps.executor.cancel(execution_id)

    async def get_status(self, execution_id: str) -> ExecutionStatus:
        return await self._deps.executor.get_status(execution_id)

    async def wait(self, execution_id: str) -> List[StepResult]:
        """Wait for the background drive of ``execution_id`` and return its history.

        Without a background drive the outcome is read from the store: a
        ``failed`` execution raises ``ExecutionFailed`` and a ``cancelled`` one
        raises ``ExecutionCancelled``.
        """
        task = self._tasks.get(execution_id)
        if task is not None:
            return await asyncio.shield(task)
        return await self._deps.executor.outcome(execution_id)

    async def run_workflow(
        self,
        *,
        goal: Optional[str] = None,
        nodes: Optional[Sequence[WorkflowNode]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> List[StepResult]:
        """Plan (or take) a workflow graph and run it."""
        if (goal is None) == (nodes is None):
            raise ValueError("exactly one of 'goal' or 'nodes' must be given")
        if nodes is None:
            nodes = await self._require_planner().create_workflow(str(goal), context)
        return await self._deps.graph.execute(nodes, context)

    def pipelines(self) -> List[str]:
        """Names of the pipelines that ``run_pipeline`` accepts."""
        if self._deps.pipelines is None:
            return []
        return self._deps.pipelines.pipelines.names()

    async def run_pipeline(self, name: str, context: Optional[Dict[str, Any]] = None) -> List[StepResult]:
        """Invoke the pipeline registered as ``name``; raises ``PipelineNotFound`` for unknown names."""
        if self._deps.pipelines is None:
            raise PipelineNotFound(name)
        return await self._deps.pipelines.invoke(name, context)

    async def shutdown(self) -> None:
        """Cancel every background drive still in flight."""
        for execution_id in list(self._tasks):
            await self._deps.executor.cancel(execution_id)
        await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()

    def _track(self, execution_id: str, task: asyncio.Task[List[StepResult]]) -> None:
        self._tasks[execution_id] = task

        def _on_done(t: asyncio.Task[List[StepResult]]) -> None:
            if self._tasks.get(execution_id) is t:
                del self._tasks[execution_id]
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error(f"Background execution {execution_id} ended with {type(exc).__name__}: {exc}")

        task.add_done_callback(_on_done)
