from __future__ import annotations

"""Expiring map of executions owned by this process.

``LiveExecutionMap`` records which executions currently have a live owner
(an asyncio task driving them). It has a single owner, the sequential
executor, and is only reachable through its accessor methods.

Entries expire ``ttl_seconds`` after the last ``put``/``touch`` so a task
that died without cleaning up does not keep its execution "live" forever;
the recovery sweep then treats it as an orphan. When a ``keep_alive``
predicate is given, an expired entry whose value still passes it is renewed
instead of dropped: a step that runs longer than the TTL keeps its owner.
"""

import time
from typing import Callable, Dict, Generic, List, Optional, Tuple, TypeVar

V = TypeVar("V")


class LiveExecutionMap(Generic[V]):
    """Map ``execution_id -> value`` whose entries expire after a TTL."""

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        keep_alive: Optional[Callable[[V], bool]] = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._keep_alive = keep_alive
        self._entries: Dict[str, Tuple[V, float]] = {}

    def put(self, execution_id: str, value: V) -> None:
        self._entries[execution_id] = (value, self._clock() + self._ttl)

    def get(self, execution_id: str) -> Optional[V]:
        entry = self._entries.get(execution_id)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            if self._keep_alive is not None and self._keep_alive(value):
                self.put(execution_id, value)
                return value
            del self._entries[execution_id]
            return None
        return value

    def touch(self, execution_id: str) -> bool:
        """Extend the TTL of a live entry. Returns False if it is gone."""
        value = self.get(execution_id)
        if value is None:
            return False
        self.put(execution_id, value)
        return True

    def pop(self, execution_id: str) -> Optional[V]:
        value = self.get(execution_id)
        self._entries.pop(execution_id, None)
        return value

    def contains(self, execution_id: str) -> bool:
        return self.get(execution_id) is not None

    def ids(self) -> List[str]:
        self._evict()
        return list(self._entries)

    def _evict(self) -> None:
        for key in list(self._entries):
            self.get(key)

    def __len__(self) -> int:
        self._evict()
        return len(self._entries)

    def __contains__(self, execution_id: object) -> bool:
        return isinstance(execution_id, str) and self.contains(execution_id)
