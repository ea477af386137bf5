from __future__ import annotations

"""LangGraph runtime for sequential plans.

``SequentialExecutor`` drives an ordered plan of ``PlanStep`` objects as a
persisted state machine.

Execution model
---------------

- Each drive of an execution runs a LangGraph state machine over
  ``_GraphState``; the ``execute`` node runs exactly one step at
  ``current_step_index``.
- Every transition is persisted through ``EngineDeps.executions`` before the
  next node runs, so step N's outcome is durable before step N+1 starts.
- Transitions are written with ``compare_and_save``: a drive only writes while
  the stored status is still in flight. If a sweep or a cancel finalized the
  execution meanwhile, the drive stops and reports the stored outcome.
- The drive runs in its own asyncio task registered in a
  ``LiveExecutionMap``; the recovery sweep uses the map to tell live
  executions from orphans, and ``cancel`` uses it to interrupt the task. An
  execution is reserved from the moment it is persisted until its task is
  registered, so there is no window in which a sweep sees it unowned.

Approval gates
--------------

A capability with ``requires_approval`` pauses the execution before it runs:
the state becomes ``pending_approval``, a synthetic ``human-in-the-loop-gate``
result is appended to the history and the graph ends. ``resume`` flips the
state to ``resumed_after_approval`` and starts a new drive that skips the
approval check exactly once. Only one of several concurrent ``resume`` calls
wins that flip.

Remediation
-----------

A failed step (raised, unknown capability, or failure result) goes to the
``remediate`` node. While the step's ``recovery_attempts`` is below the
budget, the ``ErrorRemediationAdvisor`` decides between retrying with new
arguments and failing gracefully. Retries never re-trigger the approval gate.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from langgraph.graph import END, StateGraph

from ..capabilities import requires_approval
from ..errors import (
    CapabilityFailure,
    CapabilityNotFound,
    ExecutionCancelled,
    ExecutionFailed,
    ExecutionNotFound,
    ExecutionSuperseded,
    RecoveryBudgetExhausted,
)
from ..planning.steps import is_retry
from ..schemas.domain import (
    APPROVAL_GATE_AGENT,
    ExecutionState,
    ExecutionStatus,
    PlanStep,
    StepResult,
)
from .live import LiveExecutionMap
from .models import IN_FLIGHT_STATUSES, EngineDeps, _GraphState

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECOVERY_ATTEMPTS = 2
DEFAULT_LIVE_TTL_SECONDS = 3600.0

_CANCELLABLE_STATUSES = (*IN_FLIGHT_STATUSES, ExecutionStatus.pending_approval)

DriveTask = asyncio.Task[Any]


def _task_running(task: DriveTask) -> bool:
    return not task.done()


class SequentialExecutor:
    """Execute ordered plans with approval gates and automatic remediation.

    The executor is the only writer of the executions it drives. It holds no
    per-execution state besides the live task map, so any number of
    executions can be driven concurrently by one instance.
    """

    def __init__(
        self,
        *,
        deps: EngineDeps,
        max_recovery_attempts: int = DEFAULT_MAX_RECOVERY_ATTEMPTS,
        live_ttl_seconds: float = DEFAULT_LIVE_TTL_SECONDS,
    ) -> None:
        """
        Initialize the SequentialExecutor.

        Args:
            deps: Repository, capability registry and remediation advisor.
            max_recovery_attempts: Remediation retries allowed per step.
            live_ttl_seconds: Lifetime of a live-map entry between step
                starts. Entries whose drive task is still running are renewed.
        """
        if max_recovery_attempts < 0:
            raise ValueError("max_recovery_attempts must be >= 0")
        self._deps = deps
        self._max_recovery_attempts = max_recovery_attempts
        self._live: LiveExecutionMap[DriveTask] = LiveExecutionMap(live_ttl_seconds, keep_alive=_task_running)
        self._reserved: Set[str] = set()
        self._cancel_requested: Set[str] = set()
        self._graph = self._build_graph()

    @property
    def max_recovery_attempts(self) -> int:
        return self._max_recovery_attempts

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_GraphState)
        g.add_node("start", self._node_start)
        g.add_node("execute", self._node_execute)
        g.add_node("remediate", self._node_remediate)
        g.add_node("pause_for_approval", self._node_pause_for_approval)
        g.add_node("finish", self._node_finish)

        g.set_entry_point("start")
        g.add_edge("start", "execute")

        g.add_conditional_edges(
            "execute",
            self._route,
            {
                "continue": "execute",
                "pause": "pause_for_approval",
                "remediate": "remediate",
                "finish": "finish",
            },
        )
        g.add_conditional_edges(
            "remediate",
            self._route,
            {
                "retry": "execute",
                "finish": "finish",
            },
        )
        g.add_edge("pause_for_approval", END)
        g.add_edge("finish", END)
        return g.compile()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def _new_state(
        self,
        plan: Sequence[PlanStep],
        initial_context: Optional[Dict[str, Any]],
        session_id: Optional[str],
    ) -> ExecutionState:
        return ExecutionState(
            session_id=session_id,
            status=ExecutionStatus.running,
            plan_steps=list(plan),
            accumulated_context=dict(initial_context or {}),
        )

    async def create_execution(
        self,
        plan: Sequence[PlanStep],
        initial_context: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> ExecutionState:
        """Allocate and persist a new execution positioned at step 0.

        The execution has no owner until ``run`` is called; a recovery sweep
        in between treats it as interrupted. Use ``start`` to create and
        drive in one step.
        """
        state = self._new_state(plan, initial_context, session_id)
        await self._deps.executions.create(state)
        logger.info(f"Created execution {state.id} with {len(state.plan_steps)} step(s)")
        return state

    async def start(
        self,
        plan: Sequence[PlanStep],
        initial_context: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> Tuple[ExecutionState, asyncio.Task[List[StepResult]]]:
        """Create an execution and drive it in a background task.

        The execution is owned by this executor from the moment it is
        persisted. The returned task resolves like ``execute_plan``.
        """
        state, drive = await self._create_owned(plan, initial_context, session_id)
        task = asyncio.create_task(self._await_drive(state, drive), name=f"submit-{state.id}")
        return state, task

    async def execute_plan(
        self,
        plan: Sequence[PlanStep],
        initial_context: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> List[StepResult]:
        """Create an execution and drive it from step 0.

        Returns:
            The execution history: every step result, plus the synthetic gate
            result when the execution paused for approval.

        Raises:
            ExecutionFailed: The execution terminated as ``failed``.
            ExecutionCancelled: The execution was cancelled while running.
            PersistenceFailure: The state store failed.
        """
        state, drive = await self._create_owned(plan, initial_context, session_id)
        return await self._await_drive(state, drive)

    async def run(self, execution_id: str) -> List[StepResult]:
        """Drive a persisted ``running`` execution that has no live owner.

        A terminal execution is not driven again; its stored outcome is
        reported the way ``outcome`` does.
        """
        state = await self.get(execution_id)
        if state.status.is_terminal:
            return self._stored_outcome(state)
        if state.status != ExecutionStatus.running or self._owned(execution_id):
            logger.warning(f"Execution {execution_id} is not runnable (status={state.status.value})")
            return list(state.execution_history)
        return await self._await_drive(state, self._launch(state, skip_approval=False))

    async def resume(self, execution_id: str) -> List[StepResult]:
        """Continue an execution paused for approval.

        Resuming a terminal execution returns its stored history without
        re-executing anything. Resuming an execution that is already running
        is a no-op, and so is losing a race against a concurrent ``resume``.

        Raises:
            ExecutionNotFound: If no execution has the given id.
        """
        state = await self.get(execution_id)
        if state.status.is_terminal:
            logger.info(f"Execution {execution_id} is already {state.status.value}; nothing to resume")
            return list(state.execution_history)
        if state.status != ExecutionStatus.pending_approval or self._owned(execution_id):
            logger.warning(f"Ignoring resume of execution {execution_id} in status {state.status.value}")
            return list(state.execution_history)

        self._reserved.add(execution_id)
        try:
            state.status = ExecutionStatus.resumed_after_approval
            if not await self._deps.executions.compare_and_save(state, [ExecutionStatus.pending_approval]):
                logger.warning(f"Execution {execution_id} was resumed or changed concurrently; not resuming")
                return list(state.execution_history)
            logger.info(f"Resuming execution {execution_id} at step {state.current_step_index}")
            drive = self._launch(state, skip_approval=True)
        finally:
            self._reserved.discard(execution_id)
        return await self._await_drive(state, drive)

    async def cancel(self, execution_id: str) -> bool:
        """Cancel an execution that is not terminal yet.

        An in-flight drive is interrupted at its current await point. Steps
        already completed stay in the history.

        Returns:
            False if the execution is unknown or already terminal.
        """
        task = self._live.get(execution_id)
        if task is not None and not task.done():
            self._cancel_requested.add(execution_id)
            task.cancel()
            await asyncio.wait({task})
        state = await self._deps.executions.get(execution_id)
        if state is None or state.status.is_terminal:
            return False
        state.status = ExecutionStatus.cancelled
        state.error = "cancelled on request"
        if not await self._deps.executions.compare_and_save(state, _CANCELLABLE_STATUSES):
            return False
        logger.info(f"Cancelled execution {execution_id} at step {state.current_step_index}")
        return True

    async def get(self, execution_id: str) -> ExecutionState:
        state = await self._deps.executions.get(execution_id)
        if state is None:
            raise ExecutionNotFound(execution_id)
        return state

    async def get_status(self, execution_id: str) -> ExecutionStatus:
        return (await self.get(execution_id)).status

    async def outcome(self, execution_id: str) -> List[StepResult]:
        """Report the stored outcome of an execution.

        A ``failed`` execution raises ``ExecutionFailed`` and a ``cancelled``
        one raises ``ExecutionCancelled``; otherwise the history is returned.
        """
        return self._stored_outcome(await self.get(execution_id))

    def live_ids(self) -> List[str]:
        """Ids of the executions this executor owns (driving or about to)."""
        ids = self._live.ids()
        ids.extend(i for i in self._reserved if i not in ids)
        return ids

    # ------------------------------------------------------------------
    # Drive
    # ------------------------------------------------------------------

    def _owned(self, execution_id: str) -> bool:
        return execution_id in self._reserved or self._live.contains(execution_id)

    def _recursion_limit(self, state: ExecutionState) -> int:
        per_step = 2 * (self._max_recovery_attempts + 1) + 1
        return 10 + per_step * max(1, len(state.plan_steps))

    async def _create_owned(
        self,
        plan: Sequence[PlanStep],
        initial_context: Optional[Dict[str, Any]],
        session_id: Optional[str],
    ) -> Tuple[ExecutionState, DriveTask]:
        state = self._new_state(plan, initial_context, session_id)
        self._reserved.add(state.id)
        try:
            await self._deps.executions.create(state)
            logger.info(f"Created execution {state.id} with {len(state.plan_steps)} step(s)")
            return state, self._launch(state, skip_approval=False)
        finally:
            self._reserved.discard(state.id)

    def _launch(self, state: ExecutionState, *, skip_approval: bool) -> DriveTask:
        graph_state: _GraphState = {
            "execution": state,
            "skip_approval": skip_approval,
            "outcome": "continue",
            "failure": None,
        }
        task = asyncio.create_task(
            self._graph.ainvoke(graph_state, config={"recursion_limit": self._recursion_limit(state)}),
            name=f"execution-{state.id}",
        )
        self._live.put(state.id, task)
        return task

    async def _await_drive(self, state: ExecutionState, task: DriveTask) -> List[StepResult]:
        try:
            final = await task
        except asyncio.CancelledError:
            if state.id in self._cancel_requested:
                raise ExecutionCancelled(state.id) from None
            raise
        except ExecutionSuperseded:
            stored = await self.get(state.id)
            logger.warning(f"Execution {state.id} was finalized elsewhere as {stored.status.value}; drive stopped")
            return self._stored_outcome(stored)
        finally:
            if self._live.get(state.id) is task:
                self._live.pop(state.id)
            self._cancel_requested.discard(state.id)

        execution: ExecutionState = final["execution"]
        if execution.status == ExecutionStatus.failed:
            failure = final.get("failure")
            if isinstance(failure, ExecutionFailed):
                raise failure
            raise ExecutionFailed(execution.id, execution.error or "failed", results=execution.execution_history)
        return list(execution.execution_history)

    @staticmethod
    def _stored_outcome(state: ExecutionState) -> List[StepResult]:
        if state.status == ExecutionStatus.failed:
            raise ExecutionFailed(state.id, state.error or "failed", results=state.execution_history)
        if state.status == ExecutionStatus.cancelled:
            raise ExecutionCancelled(state.id)
        return list(state.execution_history)

    async def _persist(self, execution: ExecutionState) -> None:
        if not await self._deps.executions.compare_and_save(execution, IN_FLIGHT_STATUSES):
            raise ExecutionSuperseded(execution.id)

    # ------------------------------------------------------------------
    # Graph nodes
    # ------------------------------------------------------------------

    async def _node_start(self, state: _GraphState) -> _GraphState:
        """Graph entry node."""
        execution = state["execution"]
        logger.debug(
            f"Driving execution {execution.id} from step {execution.current_step_index}/{len(execution.plan_steps)}"
        )
        return state

    async def _node_execute(self, state: _GraphState) -> _GraphState:
        """Run the step at ``current_step_index`` and persist its outcome."""
        execution = state["execution"]
        step = execution.current_step
        if step is None:
            return {**state, "outcome": "finish", "failure": None}
        self._live.touch(execution.id)

        cap = self._deps.capabilities.lookup(step.agent_name)
        if cap is None:
            logger.warning(f"Execution {execution.id}: capability '{step.agent_name}' is not registered")
            return {**state, "outcome": "remediate", "failure": CapabilityNotFound(step.agent_name)}

        if requires_approval(cap) and not state["skip_approval"]:
            return {**state, "outcome": "pause", "failure": None}

        step_input = dict(execution.accumulated_context)
        step_input.update(step.arguments)
        try:
            result = await cap.execute(step_input)
        except Exception as e:
            logger.warning(
                f"Execution {execution.id}: step {execution.current_step_index} ({step.agent_name}) raised: {e}"
            )
            return {**state, "outcome": "remediate", "failure": e}

        if not result.ok:
            logger.warning(
                f"Execution {execution.id}: step {execution.current_step_index} ({step.agent_name}) "
                f"reported failure: {result.summary}"
            )
            failure = CapabilityFailure(step.agent_name, result.summary or "capability reported failure", result=result)
            return {**state, "outcome": "remediate", "failure": failure}

        execution.accumulated_context.update(result.details)
        execution.execution_history.append(result)
        execution.current_step_index += 1
        execution.recovery_attempts = 0
        execution.status = ExecutionStatus.running
        await self._persist(execution)
        logger.info(
            f"Execution {execution.id}: step {execution.current_step_index}/{len(execution.plan_steps)} "
            f"({step.agent_name}) succeeded"
        )
        outcome = "finish" if execution.is_finished else "continue"
        return {**state, "execution": execution, "skip_approval": False, "outcome": outcome, "failure": None}

    async def _node_remediate(self, state: _GraphState) -> _GraphState:
        """Ask the advisor how to handle the failed step."""
        execution = state["execution"]
        step = execution.current_step
        failure = state["failure"]
        assert step is not None and failure is not None

        if execution.recovery_attempts >= self._max_recovery_attempts:
            reason = (
                f"step {execution.current_step_index} ({step.agent_name}) failed after "
                f"{execution.recovery_attempts} remediation attempt(s): {failure}"
            )
            return self._terminate(state, reason, RecoveryBudgetExhausted, cause=failure)

        advisor = self._deps.advisor
        if advisor is None:
            return self._terminate(state, f"step {step.agent_name} failed: {failure}", ExecutionFailed, cause=failure)

        try:
            plan = await advisor.advise(step.agent_name, step.arguments, failure)
        except Exception as e:
            logger.error(f"Execution {execution.id}: remediation advisor failed with {type(e).__name__}: {e}")
            return self._terminate(state, f"remediation unavailable for {step.agent_name}: {e}", ExecutionFailed, cause=e)

        if not is_retry(plan):
            reason = plan.justification or f"step {step.agent_name} failed: {failure}"
            return self._terminate(state, reason, ExecutionFailed, cause=failure)

        arguments = plan.modified_arguments if plan.modified_arguments is not None else step.arguments
        execution.plan_steps[execution.current_step_index] = PlanStep(agent_name=step.agent_name, arguments=arguments)
        execution.recovery_attempts += 1
        await self._persist(execution)
        logger.info(
            f"Execution {execution.id}: retrying step {execution.current_step_index} ({step.agent_name}), "
            f"attempt {execution.recovery_attempts}/{self._max_recovery_attempts}"
        )
        return {**state, "execution": execution, "skip_approval": True, "outcome": "retry", "failure": None}

    def _terminate(
        self,
        state: _GraphState,
        reason: str,
        error_type: type[ExecutionFailed],
        *,
        cause: BaseException,
    ) -> _GraphState:
        execution = state["execution"]
        step = execution.current_step
        result = getattr(cause, "result", None)
        if not isinstance(result, StepResult):
            result = StepResult.failure(
                step.agent_name if step is not None else "",
                summary=str(cause) or type(cause).__name__,
                details={"error": type(cause).__name__},
            )
        execution.execution_history.append(result)
        execution.status = ExecutionStatus.failed
        execution.error = reason
        error = error_type(execution.id, reason, results=execution.execution_history, cause=cause)
        logger.error(f"Execution {execution.id} failed: {reason}")
        return {**state, "execution": execution, "outcome": "finish", "failure": error}

    async def _node_pause_for_approval(self, state: _GraphState) -> _GraphState:
        """Persist ``pending_approval`` and record the synthetic gate result.

        The graph transitions to END after this node; ``resume`` starts a new
        drive from the persisted state.
        """
        execution = state["execution"]
        execution.status = ExecutionStatus.pending_approval
        execution.execution_history.append(
            StepResult.success(
                APPROVAL_GATE_AGENT,
                summary=f"Waiting for approval of step {execution.current_step_index}",
                details={"executionId": execution.id},
            )
        )
        await self._persist(execution)
        logger.info(f"Execution {execution.id} paused for approval at step {execution.current_step_index}")
        return state

    async def _node_finish(self, state: _GraphState) -> _GraphState:
        """Persist the terminal status."""
        execution = state["execution"]
        if execution.status != ExecutionStatus.failed:
            execution.status = ExecutionStatus.completed
            execution.error = None
        await self._persist(execution)
        logger.info(
            f"Execution {execution.id} {execution.status.value} with {len(execution.execution_history)} result(s)"
        )
        return state

    def _route(self, state: _GraphState) -> str:
        return state["outcome"]
