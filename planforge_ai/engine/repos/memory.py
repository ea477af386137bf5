from __future__ import annotations

"""In-memory execution state repository.

Used for tests and single-process deployments that do not need durability
across restarts. States are deep-copied on the way in and out so the store
never shares mutable objects with the executor.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from ..schemas.domain import ExecutionState, ExecutionStatus
from .interfaces import ExecutionStateRepository


class InMemoryExecutionStateRepository(ExecutionStateRepository):
    """Dict-backed implementation of ``ExecutionStateRepository``."""

    def __init__(self) -> None:
        self._states: Dict[str, ExecutionState] = {}
        self._lock = asyncio.Lock()

    async def create(self, state: ExecutionState) -> None:
        await self.save(state)

    async def save(self, state: ExecutionState) -> None:
        state.updated_at = datetime.now(timezone.utc)
        async with self._lock:
            self._states[state.id] = state.model_copy(deep=True)

    async def compare_and_save(self, state: ExecutionState, expected: Iterable[ExecutionStatus]) -> bool:
        wanted = {ExecutionStatus(s) for s in expected}
        async with self._lock:
            stored = self._states.get(state.id)
            if stored is None or stored.status not in wanted:
                return False
            state.updated_at = datetime.now(timezone.utc)
            self._states[state.id] = state.model_copy(deep=True)
            return True

    async def get(self, execution_id: str) -> Optional[ExecutionState]:
        async with self._lock:
            state = self._states.get(execution_id)
            return state.model_copy(deep=True) if state is not None else None

    async def delete(self, execution_id: str) -> bool:
        async with self._lock:
            return self._states.pop(execution_id, None) is not None

    async def list_by_status(self, statuses: Iterable[ExecutionStatus]) -> list[ExecutionState]:
        wanted = set(statuses)
        async with self._lock:
            matches = [s for s in self._states.values() if s.status in wanted]
        matches.sort(key=lambda s: s.created_at)
        return [s.model_copy(deep=True) for s in matches]

    async def list(self, limit: int = 100, offset: int = 0) -> list[ExecutionState]:
        async with self._lock:
            states = sorted(self._states.values(), key=lambda s: s.created_at, reverse=True)
        return [s.model_copy(deep=True) for s in states[offset : offset + limit]]
