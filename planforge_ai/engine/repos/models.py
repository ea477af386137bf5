from __future__ import annotations

"""SQLAlchemy ORM models for execution persistence.

These ORM models define the SQL schema used by the SQL repository
implementation in ``planforge_ai.engine.repos.sql``.

Design
------

One row holds the complete state of one execution, so every transition is a
single-row upsert committed atomically:

- ``status`` and ``current_step_index`` are plain columns so the recovery
  sweep and status polling can query them cheaply.
- Plan steps, the accumulated context and the execution history are JSON
  documents (``JSONB`` on PostgreSQL, ``JSON`` elsewhere).

Table names are prefixed with ``pf_`` to avoid collisions in shared databases.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class ExecutionStateRow(Base):
    """Row model for ``pf_execution_states``.

    Key fields:

    - ``status``: state machine status (running/pending_approval/...).
    - ``current_step_index``: index of the next step to execute.
    - ``recovery_attempts``: remediation retries spent on the current step.
    """

    __tablename__ = "pf_execution_states"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)

    status: Mapped[str] = mapped_column(String(32), index=True)
    plan_steps: Mapped[List[Dict[str, Any]]] = mapped_column(JsonDocument, default=list)
    accumulated_context: Mapped[Dict[str, Any]] = mapped_column(JsonDocument, default=dict)
    execution_history: Mapped[List[Dict[str, Any]]] = mapped_column(JsonDocument, default=list)
    current_step_index: Mapped[int] = mapped_column(Integer, default=0)
    recovery_attempts: Mapped[int] = mapped_column(Integer, default=0)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
