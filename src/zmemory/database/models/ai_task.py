"""AI task model for zmemory.

Defines the ai_tasks table together with the enums describing an AI
task's type, execution mode, priority, and lifecycle status. An AI task
is a unit of work delegated to an AI agent on behalf of a user.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Enum, Float, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from zmemory.database.models.base import Base, TimestampMixin

JSONType = JSON().with_variant(JSONB(), "postgresql")


class AITaskStatus(str, enum.Enum):
    """Lifecycle states of an AI task.

    States:
        pending: Created and waiting to be picked up.
        assigned: Assigned to an agent but not yet started.
        in_progress: Agent is executing the task.
        paused: Execution suspended.
        completed: Finished successfully (terminal).
        failed: Execution failed; may be retried.
        cancelled: Cancelled by the user; may be restarted.
    """

    pending = "pending"
    assigned = "assigned"
    in_progress = "in_progress"
    paused = "paused"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


# Statuses that stamp completed_at when first reached
TERMINAL_STATUSES: frozenset[AITaskStatus] = frozenset(
    {AITaskStatus.completed, AITaskStatus.failed, AITaskStatus.cancelled}
)


class AITaskType(str, enum.Enum):
    """Kind of work an AI task asks for."""

    generation = "generation"
    analysis = "analysis"
    summarization = "summarization"
    classification = "classification"
    translation = "translation"
    conversation = "conversation"
    coding = "coding"
    reasoning = "reasoning"
    other = "other"


class AITaskMode(str, enum.Enum):
    """Execution aggressiveness.

    plan_only produces a plan, dry_run simulates, execute performs
    side-effecting work.
    """

    plan_only = "plan_only"
    dry_run = "dry_run"
    execute = "execute"


class AITaskPriority(str, enum.Enum):
    """Priority stored in the task metadata bag."""

    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class AITask(TimestampMixin, Base):
    """A unit of work delegated to an AI agent.

    ``metadata`` is reserved on declarative classes, so the metadata bag is
    mapped to the ``metadata`` column through the ``metadata_`` attribute.

    Attributes:
        id: UUID string primary key (from TimestampMixin).
        user_id: Owner of the task; every query is scoped by it.
        task_id: Regular task this AI task was delegated from.
        agent_id: Assigned AI agent.
        objective: What the agent must achieve.
        deliverables: Expected outputs.
        context: Background information for the agent.
        acceptance_criteria: How completion is judged.
        task_type: Kind of work (AITaskType).
        mode: Execution mode (AITaskMode).
        status: Lifecycle status (AITaskStatus).
        dependencies: Ids of tasks this one depends on.
        guardrails: Cost/time caps, approval flag, data scopes.
        metadata_: Free-form metadata bag (priority, tags, model, retries...).
        estimated_cost_usd: Estimated cost in USD.
        actual_cost_usd: Cost reported by the executor.
        estimated_duration_min: Estimated duration in minutes.
        actual_duration_min: Duration reported by the executor.
        execution_result: Output, error, token and cost details of the last run.
        history: Append-only list of notable events.
        is_local_task: Whether the task runs on a local executor workspace.
        executor_workspace_id: Executor workspace the task is bound to.
        due_at: Deadline.
        started_at: First time the task moved to in_progress.
        completed_at: First time the task reached a terminal state.
    """

    __tablename__ = "ai_tasks"

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    task_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    agent_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    objective: Mapped[str] = mapped_column(Text, nullable=False)
    deliverables: Mapped[str | None] = mapped_column(Text, nullable=True)
    context: Mapped[str | None] = mapped_column(Text, nullable=True)
    acceptance_criteria: Mapped[str | None] = mapped_column(Text, nullable=True)
    task_type: Mapped[AITaskType] = mapped_column(
        Enum(AITaskType, native_enum=False, length=32, name="ai_task_type"),
        nullable=False,
    )
    mode: Mapped[AITaskMode] = mapped_column(
        Enum(AITaskMode, native_enum=False, length=16, name="ai_task_mode"),
        nullable=False,
        default=AITaskMode.plan_only,
    )
    status: Mapped[AITaskStatus] = mapped_column(
        Enum(AITaskStatus, native_enum=False, length=16, name="ai_task_status"),
        nullable=False,
        default=AITaskStatus.pending,
        index=True,
    )
    dependencies: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    guardrails: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        nullable=False,
        default=dict,
    )
    estimated_cost_usd: Mapped[float | None] = mapped_column(Float, nullable=True)
    actual_cost_usd: Mapped[float | None] = mapped_column(Float, nullable=True)
    estimated_duration_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    actual_duration_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    execution_result: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    history: Mapped[list[Any] | None] = mapped_column(JSONType, nullable=True)
    is_local_task: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    executor_workspace_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    due_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
