"""Initial schema for zmemory.

Creates the tasks table and the ai_tasks table holding AI tasks delegated
from them. Enum-valued columns are stored as strings with CHECK
constraints so the same schema works on PostgreSQL and SQLite.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "tasks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        *_timestamps(),
    )
    op.create_index("ix_tasks_user_id", "tasks", ["user_id"])

    op.create_table(
        "ai_tasks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("task_id", sa.String(36), nullable=True),
        sa.Column("agent_id", sa.String(64), nullable=False),
        sa.Column("objective", sa.Text(), nullable=False),
        sa.Column("deliverables", sa.Text(), nullable=True),
        sa.Column("context", sa.Text(), nullable=True),
        sa.Column("acceptance_criteria", sa.Text(), nullable=True),
        sa.Column(
            "task_type",
            sa.Enum(
                "generation", "analysis", "summarization", "classification", "translation",
                "conversation", "coding", "reasoning", "other",
                name="ai_task_type", native_enum=False, length=32, create_constraint=True,
            ),
            nullable=False,
        ),
        sa.Column(
            "mode",
            sa.Enum(
                "plan_only", "dry_run", "execute",
                name="ai_task_mode", native_enum=False, length=16, create_constraint=True,
            ),
            nullable=False,
            server_default="plan_only",
        ),
        sa.Column(
            "status",
            sa.Enum(
                "pending", "assigned", "in_progress", "paused", "completed", "failed", "cancelled",
                name="ai_task_status", native_enum=False, length=16, create_constraint=True,
            ),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("dependencies", JSON_TYPE, nullable=False),
        sa.Column("guardrails", JSON_TYPE, nullable=False),
        sa.Column("metadata", JSON_TYPE, nullable=False),
        sa.Column("estimated_cost_usd", sa.Float(), nullable=True),
        sa.Column("actual_cost_usd", sa.Float(), nullable=True),
        sa.Column("estimated_duration_min", sa.Integer(), nullable=True),
        sa.Column("actual_duration_min", sa.Integer(), nullable=True),
        sa.Column("execution_result", JSON_TYPE, nullable=True),
        sa.Column("history", JSON_TYPE, nullable=True),
        sa.Column("is_local_task", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("executor_workspace_id", sa.String(36), nullable=True),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_ai_tasks_user_id", "ai_tasks", ["user_id"])
    op.create_index("ix_ai_tasks_task_id", "ai_tasks", ["task_id"])
    op.create_index("ix_ai_tasks_agent_id", "ai_tasks", ["agent_id"])
    op.create_index("ix_ai_tasks_status", "ai_tasks", ["status"])
    op.create_index("ix_ai_tasks_user_created", "ai_tasks", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_ai_tasks_user_created", table_name="ai_tasks")
    op.drop_index("ix_ai_tasks_status", table_name="ai_tasks")
    op.drop_index("ix_ai_tasks_agent_id", table_name="ai_tasks")
    op.drop_index("ix_ai_tasks_task_id", table_name="ai_tasks")
    op.drop_index("ix_ai_tasks_user_id", table_name="ai_tasks")
    op.drop_table("ai_tasks")

    op.drop_index("ix_tasks_user_id", table_name="tasks")
    op.drop_table("tasks")
