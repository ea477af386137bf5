"""Persistence layer for execution state.

The executors talk to an ``ExecutionStateRepository``. Two implementations
ship with the package:

- ``InMemoryExecutionStateRepository`` for tests and ephemeral deployments.
- ``SqlExecutionStateRepository`` on top of async SQLAlchemy (PostgreSQL via
  asyncpg, SQLite via aiosqlite).
"""

from .interfaces import ExecutionStateRepository
from .memory import InMemoryExecutionStateRepository
from .sql import (
    SqlExecutionStateRepository,
    create_all,
    create_engine,
    create_sessionmaker,
)

__all__ = [
    "ExecutionStateRepository",
    "InMemoryExecutionStateRepository",
    "SqlExecutionStateRepository",
    "create_all",
    "create_engine",
    "create_sessionmaker",
]
