from __future__ import annotations

"""Crash recovery for executions orphaned by a restart.

An execution whose stored status is ``running`` or ``resumed_after_approval``
must have a live owner driving it. After a restart (or a drive that died on a
``PersistenceFailure``) nobody owns it any more; ``sweep_interrupted`` marks
such executions ``failed`` with the reason ``"interrupted by restart"``.
The write is a compare-and-save, so an execution that finished or was
cancelled after it was listed keeps its status.

``RecoverySweeper`` runs the sweep once at startup and then periodically.
"""

import asyncio
import logging
from typing import Callable, Iterable, List, Optional

from ..repos import ExecutionStateRepository
from ..schemas.domain import ExecutionStatus, StepResult
from .models import IN_FLIGHT_STATUSES

logger = logging.getLogger(__name__)

INTERRUPTED_REASON = "interrupted by restart"


async def sweep_interrupted(repo: ExecutionStateRepository, live_ids: Iterable[str] = ()) -> List[str]:
    """
    Fail every in-flight execution that has no live owner.

    Args:
        repo: The execution state store.
        live_ids: Ids of executions currently driven by this process.

    Returns:
        The ids of the executions marked ``failed``.
    """
    live = set(live_ids)
    swept: List[str] = []
    for state in await repo.list_by_status(IN_FLIGHT_STATUSES):
        if state.id in live:
            continue
        step = state.current_step
        if step is not None:
            state.execution_history.append(
                StepResult.failure(step.agent_name, summary=INTERRUPTED_REASON, details={"error": "Interrupted"})
            )
        state.status = ExecutionStatus.failed
        state.error = INTERRUPTED_REASON
        if not await repo.compare_and_save(state, IN_FLIGHT_STATUSES):
            logger.debug(f"Execution {state.id} changed status during the sweep; skipped")
            continue
        swept.append(state.id)
        logger.warning(f"Execution {state.id} was {INTERRUPTED_REASON} at step {state.current_step_index}")
    if swept:
        logger.info(f"Recovery sweep failed {len(swept)} orphaned execution(s)")
    return swept


class RecoverySweeper:
    """Run ``sweep_interrupted`` at startup and every ``interval_seconds``."""

    def __init__(
        self,
        repo: ExecutionStateRepository,
        *,
        live_ids: Callable[[], Iterable[str]],
        interval_seconds: float = 60.0,
    ) -> None:
        self._repo = repo
        self._live_ids = live_ids
        self._interval = float(interval_seconds)
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> List[str]:
        return await sweep_interrupted(self._repo, self._live_ids())

    async def start(self) -> List[str]:
        """Sweep immediately, then keep sweeping in the background."""
        swept = await self.sweep_once()
        if not self.running:
            self._task = asyncio.create_task(self._loop(), name="recovery-sweeper")
            logger.info(f"Recovery sweeper started (interval={self._interval}s)")
        return swept

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Recovery sweeper stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("Recovery sweep failed")
