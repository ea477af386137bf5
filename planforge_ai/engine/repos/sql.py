from __future__ import annotations

"""SQLAlchemy async repository implementation.

This module provides a SQL-backed persistence implementation of the
``ExecutionStateRepository`` interface defined in
``planforge_ai.engine.repos.interfaces``.

Usage
-----

Typical wiring (tests or application setup):

- Create an async engine with ``create_engine``.
- Create tables with ``create_all`` (for tests/dev; production uses the
  Alembic migrations).
- Create a session factory with ``create_sessionmaker``.
- Build the repository with ``SqlExecutionStateRepository(session_factory)``.

Transaction model
-----------------

Each repository method opens an ``AsyncSession``, performs its operation, and
commits. A state transition is therefore durable when ``save`` returns, which
is what the executor's "persist before the next step" ordering relies on.
Driver errors are re-raised as ``PersistenceFailure``.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..errors import PersistenceFailure
from ..schemas.domain import ExecutionState, ExecutionStatus
from .interfaces import ExecutionStateRepository
from .models import Base, ExecutionStateRow


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    The helper normalizes Postgres URLs to ensure the async driver is used.
    For example, it rewrites ``postgresql://`` and other variants to
    ``postgresql+asyncpg://``. Other URLs (e.g. ``sqlite+aiosqlite://``) are
    used unchanged.
    """
    url = re.sub(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://", "postgresql+asyncpg://", db_url, count=1)
    if url.startswith("postgresql+asyncpg://"):
        return create_async_engine(url, pool_pre_ping=True)
    return create_async_engine(url)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` with safe defaults for this project."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata.

    This is mainly intended for tests and local development.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo; values are always written in UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _row_values(state: ExecutionState) -> Dict[str, Any]:
    doc = state.model_dump(mode="json", by_alias=True)
    return dict(
        id=state.id,
        session_id=state.session_id,
        status=state.status.value,
        plan_steps=doc["planSteps"],
        accumulated_context=doc["accumulatedContext"],
        execution_history=doc["executionHistory"],
        current_step_index=state.current_step_index,
        recovery_attempts=state.recovery_attempts,
        error=state.error,
        created_at=state.created_at,
        updated_at=state.updated_at,
    )


def _to_row(state: ExecutionState) -> ExecutionStateRow:
    return ExecutionStateRow(**_row_values(state))


def _to_state(row: ExecutionStateRow) -> ExecutionState:
    return ExecutionState.model_validate(
        {
            "id": row.id,
            "session_id": row.session_id,
            "status": ExecutionStatus(row.status),
            "plan_steps": list(row.plan_steps or []),
            "accumulated_context": dict(row.accumulated_context or {}),
            "execution_history": list(row.execution_history or []),
            "current_step_index": row.current_step_index,
            "recovery_attempts": row.recovery_attempts,
            "error": row.error,
            "created_at": _as_utc(row.created_at),
            "updated_at": _as_utc(row.updated_at),
        }
    )


@dataclass(frozen=True)
class SqlExecutionStateRepository(ExecutionStateRepository):
    """SQL implementation of ``ExecutionStateRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, state: ExecutionState) -> None:
        """
        Persist a new execution record.

        Args:
            state: The execution state to insert.
        """
        try:
            async with self.session_factory() as s:
                s.add(_to_row(state))
                await s.commit()
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"could not create execution {state.id}: {e}") from e

    async def save(self, state: ExecutionState) -> None:
        """
        Insert or replace an execution record.

        Args:
            state: The execution state to persist; ``updated_at`` is refreshed.
        """
        state.updated_at = _utc_now()
        try:
            async with self.session_factory() as s:
                await s.merge(_to_row(state))
                await s.commit()
        except (SQLAlchemyError, TypeError, ValueError) as e:
            raise PersistenceFailure(f"could not save execution {state.id}: {e}") from e

    async def compare_and_save(self, state: ExecutionState, expected: Iterable[ExecutionStatus]) -> bool:
        """
        Replace an execution record only if its stored status is one of ``expected``.

        The status check and the write are a single ``UPDATE ... WHERE``, so
        two writers racing on the same row cannot both succeed.
        """
        statuses = [ExecutionStatus(s).value for s in expected]
        state.updated_at = _utc_now()
        try:
            values = _row_values(state)
            values.pop("id")
            values.pop("created_at")
            async with self.session_factory() as s:
                stmt = (
                    update(ExecutionStateRow)
                    .where(ExecutionStateRow.id == state.id, ExecutionStateRow.status.in_(statuses))
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                result = await s.execute(stmt)
                await s.commit()
                return result.rowcount == 1
        except (SQLAlchemyError, TypeError, ValueError) as e:
            raise PersistenceFailure(f"could not save execution {state.id}: {e}") from e

    async def get(self, execution_id: str) -> Optional[ExecutionState]:
        """
        Retrieve an execution by its ID.

        Returns:
            The ExecutionState if found, otherwise None.
        """
        try:
            async with self.session_factory() as s:
                row = await s.get(ExecutionStateRow, execution_id)
                return _to_state(row) if row is not None else None
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"could not load execution {execution_id}: {e}") from e

    async def delete(self, execution_id: str) -> bool:
        try:
            async with self.session_factory() as s:
                result = await s.execute(delete(ExecutionStateRow).where(ExecutionStateRow.id == execution_id))
                await s.commit()
                return bool(result.rowcount)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"could not delete execution {execution_id}: {e}") from e

    async def list_by_status(self, statuses: Iterable[ExecutionStatus]) -> list[ExecutionState]:
        """
        List executions whose status is one of ``statuses``, oldest first.
        """
        values = [ExecutionStatus(s).value for s in statuses]
        try:
            async with self.session_factory() as s:
                stmt = (
                    select(ExecutionStateRow)
                    .where(ExecutionStateRow.status.in_(values))
                    .order_by(ExecutionStateRow.created_at.asc())
                )
                result = await s.execute(stmt)
                return [_to_state(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"could not list executions by status: {e}") from e

    async def list(self, limit: int = 100, offset: int = 0) -> list[ExecutionState]:
        """
        List executions, most recently created first.

        Args:
            limit: Max number of records to return.
            offset: Pagination offset.
        """
        try:
            async with self.session_factory() as s:
                stmt = (
                    select(ExecutionStateRow)
                    .order_by(ExecutionStateRow.created_at.desc())
                    .offset(offset)
                    .limit(limit)
                )
                result = await s.execute(stmt)
                return [_to_state(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"could not list executions: {e}") from e
