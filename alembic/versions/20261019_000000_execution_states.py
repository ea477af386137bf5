"""Execution state table for PlanForge-AI

Revision ID: 20261019_000000
Revises: None
Create Date: 2026-10-19 00:00:00.000000

Creates ``pf_execution_states``: one row per sequential plan execution holding
its status, plan, accumulated context and result history.

Revision format: YYYYMMDD_HHMMSS_description

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261019_000000"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_DOCUMENT = sa.JSON().with_variant(JSONB(), "postgresql")


def upgrade() -> None:
    """Create the execution state table."""

    op.create_table(
        "pf_execution_states",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("session_id", sa.String(128), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("plan_steps", JSON_DOCUMENT, nullable=False),
        sa.Column("accumulated_context", JSON_DOCUMENT, nullable=False),
        sa.Column("execution_history", JSON_DOCUMENT, nullable=False),
        sa.Column("current_step_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("recovery_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_pf_execution_states_session_id", "session_id"),
        sa.Index("ix_pf_execution_states_status", "status"),
        sa.Index("ix_pf_execution_states_created_at", "created_at"),
    )


def downgrade() -> None:
    """Drop the execution state table."""
    op.drop_table("pf_execution_states")
