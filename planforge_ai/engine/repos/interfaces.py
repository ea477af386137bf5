from __future__ import annotations

"""Repository interface contract.

The executors depend on this Protocol instead of a concrete persistence
implementation.

Contract guidelines
-------------------

- All methods are async.
- ``save`` is an upsert of the full state and refreshes ``updated_at``; when it
  returns, the state is durable.
- Implementations never hand out objects that alias their internal storage:
  callers own the instances they pass in and get back.
- ``compare_and_save`` checks the stored status and writes in one atomic
  step.
- Storage errors are raised as ``PersistenceFailure``.
"""

from typing import Iterable, Optional, Protocol

from ..schemas.domain import ExecutionState, ExecutionStatus


class ExecutionStateRepository(Protocol):
    """Persist and query execution state records."""

    async def create(self, state: ExecutionState) -> None:
        """
        Create a new execution record.

        Args:
            state: The initial execution state to persist.
        """
        ...

    async def save(self, state: ExecutionState) -> None:
        """
        Insert or replace an execution record.

        Args:
            state: The execution state to persist; its ``updated_at`` is refreshed.
        """
        ...

    async def compare_and_save(self, state: ExecutionState, expected: Iterable[ExecutionStatus]) -> bool:
        """
        Replace an execution record only if its stored status is one of ``expected``.

        Executors use it for every transition of an execution they drive, so
        a record that another writer moved to a different status is left
        untouched.

        Args:
            state: The execution state to persist; its ``updated_at`` is refreshed.
            expected: Stored statuses that allow the write.

        Returns:
            True if the record was written, False if it is missing or its
            status did not match.
        """
        ...

    async def get(self, execution_id: str) -> Optional[ExecutionState]:
        """
        Retrieve an execution by its ID.

        Args:
            execution_id: The execution identifier.

        Returns:
            The ExecutionState if found, else None.
        """
        ...

    async def delete(self, execution_id: str) -> bool:
        """
        Delete an execution record.

        Returns:
            True if a record was deleted.
        """
        ...

    async def list_by_status(self, statuses: Iterable[ExecutionStatus]) -> list[ExecutionState]:
        """
        List executions whose status is one of ``statuses``.

        Args:
            statuses: The statuses to match.

        Returns:
            A list of ExecutionState objects, oldest first.
        """
        ...

    async def list(self, limit: int = 100, offset: int = 0) -> list[ExecutionState]:
        """
        List executions, most recently created first.

        Args:
            limit: Max number of records to return.
            offset: Pagination offset.
        """
        ...
