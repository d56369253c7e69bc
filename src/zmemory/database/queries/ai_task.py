"""AI task query functions for zmemory.

Provides async functions for creating, reading, updating, listing, and
aggregating AITask rows. Every function is scoped by ``user_id``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from zmemory.database.models.ai_task import (
    TERMINAL_STATUSES,
    AITask,
    AITaskMode,
    AITaskStatus,
    AITaskType,
)
from zmemory.schemas.ai_task import AITaskFilterParams, AITaskMetadata

logger = structlog.get_logger(__name__)

# Columns a create/update payload may set, keyed by payload name
_PAYLOAD_COLUMNS: dict[str, str] = {
    "task_id": "task_id",
    "agent_id": "agent_id",
    "objective": "objective",
    "deliverables": "deliverables",
    "context": "context",
    "acceptance_criteria": "acceptance_criteria",
    "task_type": "task_type",
    "mode": "mode",
    "status": "status",
    "dependencies": "dependencies",
    "guardrails": "guardrails",
    "metadata": "metadata_",
    "estimated_cost_usd": "estimated_cost_usd",
    "actual_cost_usd": "actual_cost_usd",
    "estimated_duration_min": "estimated_duration_min",
    "actual_duration_min": "actual_duration_min",
    "execution_result": "execution_result",
    "history": "history",
    "is_local_task": "is_local_task",
    "executor_workspace_id": "executor_workspace_id",
    "due_at": "due_at",
}

_ENUM_COLUMNS = {
    "task_type": AITaskType,
    "mode": AITaskMode,
    "status": AITaskStatus,
}

_DATETIME_COLUMNS = {"due_at"}


def _coerce_value(key: str, value: Any) -> Any:
    if value is None:
        return None
    if key in _ENUM_COLUMNS:
        return _ENUM_COLUMNS[key](value)
    if key in _DATETIME_COLUMNS and isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return value


def _apply_payload(task: AITask, payload: Mapping[str, Any]) -> None:
    for key, value in payload.items():
        column = _PAYLOAD_COLUMNS.get(key)
        if column is None:
            logger.debug("ai_task_payload_key_ignored", key=key)
            continue
        setattr(task, column, _coerce_value(key, value))


def _stamp_status_times(task: AITask, status: AITaskStatus) -> None:
    now = datetime.now(timezone.utc)
    if status == AITaskStatus.in_progress and task.started_at is None:
        task.started_at = now
    if status in TERMINAL_STATUSES and task.completed_at is None:
        task.completed_at = now


async def get_ai_task(
    session: AsyncSession,
    user_id: str,
    task_id: str,
) -> AITask | None:
    """Retrieve an AI task by ID for a user.

    Args:
        session: Active async database session.
        user_id: Owner of the task.
        task_id: ID of the AI task.

    Returns:
        The AITask if it exists and belongs to the user, None otherwise.
    """
    stmt = select(AITask).where(AITask.user_id == user_id, AITask.id == task_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


def _filtered_select(user_id: str, filters: AITaskFilterParams) -> Select[tuple[AITask]]:
    stmt = select(AITask).where(AITask.user_id == user_id)

    if filters.task_type is not None:
        stmt = stmt.where(AITask.task_type == filters.task_type)
    if filters.status is not None:
        stmt = stmt.where(AITask.status == filters.status)
    if filters.priority is not None:
        stmt = stmt.where(AITask.metadata_["priority"].as_string() == filters.priority.value)
    if filters.mode is not None:
        stmt = stmt.where(AITask.mode == filters.mode)
    if filters.agent_id:
        stmt = stmt.where(AITask.agent_id == filters.agent_id)
    if filters.task_id:
        stmt = stmt.where(AITask.task_id == filters.task_id)
    if filters.is_local_task is not None:
        stmt = stmt.where(AITask.is_local_task == filters.is_local_task)
    if filters.executor_workspace_id:
        stmt = stmt.where(AITask.executor_workspace_id == filters.executor_workspace_id)

    due_from = filters.due_from or filters.deadline_after
    due_to = filters.due_to or filters.deadline_before
    if due_from is not None:
        stmt = stmt.where(AITask.due_at >= due_from)
    if due_to is not None:
        stmt = stmt.where(AITask.due_at <= due_to)

    if filters.min_cost is not None:
        stmt = stmt.where(AITask.estimated_cost_usd >= filters.min_cost)
    if filters.max_cost is not None:
        stmt = stmt.where(AITask.estimated_cost_usd <= filters.max_cost)

    if filters.search and filters.search.strip():
        pattern = f"%{filters.search.strip()}%"
        stmt = stmt.where(
            or_(
                AITask.objective.ilike(pattern),
                AITask.deliverables.ilike(pattern),
                AITask.context.ilike(pattern),
            )
        )

    if filters.created_after is not None:
        stmt = stmt.where(AITask.created_at >= filters.created_after)
    if filters.created_before is not None:
        stmt = stmt.where(AITask.created_at <= filters.created_before)
    if filters.updated_after is not None:
        stmt = stmt.where(AITask.updated_at >= filters.updated_after)
    if filters.updated_before is not None:
        stmt = stmt.where(AITask.updated_at <= filters.updated_before)

    return stmt


def _sort_column(sort_by: str) -> Any:
    columns: dict[str, Any] = {
        "created_at": AITask.created_at,
        "updated_at": AITask.updated_at,
        "completed_at": AITask.completed_at,
        "due_at": AITask.due_at,
        "deadline": AITask.due_at,
        "objective": AITask.objective,
        "status": AITask.status,
        "estimated_cost": AITask.estimated_cost_usd,
        "priority": AITask.metadata_["priority"].as_string(),
    }
    return columns.get(sort_by, AITask.created_at)


def _matches_post_filters(task: AITask, filters: AITaskFilterParams) -> bool:
    if filters.tags:
        task_tags = set((task.metadata_ or {}).get("tags") or [])
        if not set(filters.tags).issubset(task_tags):
            return False
    if filters.parent_task_id:
        if filters.parent_task_id not in (task.dependencies or []):
            return False
    return True


async def list_ai_tasks(
    session: AsyncSession,
    user_id: str,
    filters: AITaskFilterParams,
) -> tuple[list[AITask], int]:
    """List AI tasks matching the filters, sorted and paginated.

    Tag and parent filters look inside JSON columns, which is evaluated in
    Python so the same query runs on PostgreSQL and SQLite; pagination then
    happens after that filtering.

    Args:
        session: Active async database session.
        user_id: Owner of the tasks.
        filters: Filter, sort and pagination parameters.

    Returns:
        Tuple of (page of AITask rows, total number of matches).
    """
    stmt = _filtered_select(user_id, filters)

    column = _sort_column(filters.sort_by)
    ordering = column.asc() if filters.sort_order == "asc" else column.desc()
    stmt = stmt.order_by(ordering, AITask.id.asc())

    if filters.tags or filters.parent_task_id:
        result = await session.execute(stmt)
        matching = [task for task in result.scalars().all() if _matches_post_filters(task, filters)]
        page = matching[filters.offset : filters.offset + filters.limit]
        return page, len(matching)

    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = (await session.execute(count_stmt)).scalar_one()

    result = await session.execute(stmt.offset(filters.offset).limit(filters.limit))
    return list(result.scalars().all()), int(total)


async def create_ai_task(
    session: AsyncSession,
    user_id: str,
    payload: Mapping[str, Any],
) -> AITask:
    """Create a new AI task.

    Args:
        session: Active async database session.
        user_id: Owner of the new task.
        payload: Column values keyed by their payload names (``metadata``
            maps to the metadata column).

    Returns:
        The newly created AITask instance.
    """
    task = AITask(user_id=user_id)
    _apply_payload(task, payload)
    if task.status is None:
        task.status = AITaskStatus.pending
    if task.dependencies is None:
        task.dependencies = []
    if task.guardrails is None:
        task.guardrails = {}
    if task.metadata_ is None:
        task.metadata_ = {}
    if task.is_local_task is None:
        task.is_local_task = False

    session.add(task)
    await session.commit()
    await session.refresh(task)

    logger.info(
        "ai_task_row_created",
        task_id=task.id,
        user_id=user_id,
        task_type=task.task_type.value,
        status=task.status.value,
    )
    return task


async def update_ai_task(
    session: AsyncSession,
    user_id: str,
    task_id: str,
    payload: Mapping[str, Any],
) -> AITask | None:
    """Apply a partial update to an AI task.

    Args:
        session: Active async database session.
        user_id: Owner of the task.
        task_id: ID of the AI task.
        payload: Column values to set.

    Returns:
        The updated AITask, or None if it does not exist for the user.
    """
    task = await get_ai_task(session, user_id, task_id)
    if task is None:
        return None

    _apply_payload(task, payload)
    if "status" in payload and payload["status"] is not None:
        _stamp_status_times(task, task.status)

    await session.commit()
    await session.refresh(task)

    logger.info("ai_task_row_updated", task_id=task_id, fields=sorted(payload))
    return task


async def update_ai_task_status(
    session: AsyncSession,
    user_id: str,
    task_id: str,
    status: AITaskStatus | str,
    result_data: Mapping[str, Any] | None = None,
) -> AITask | None:
    """Change an AI task's status and record execution results.

    Stamps started_at/completed_at, merges ``result_data`` into the stored
    execution_result, copies actual cost and duration onto their columns,
    records the model/provider last used, and increments the metadata
    retry counter when the task fails.

    Args:
        session: Active async database session.
        user_id: Owner of the task.
        task_id: ID of the AI task.
        status: New status.
        result_data: Optional execution result fields.

    Returns:
        The updated AITask, or None if it does not exist for the user.
    """
    task = await get_ai_task(session, user_id, task_id)
    if task is None:
        return None

    new_status = AITaskStatus(status)
    old_status = task.status
    task.status = new_status
    _stamp_status_times(task, new_status)

    metadata: dict[str, Any] = dict(task.metadata_ or {})
    metadata_changed = False

    if result_data:
        task.execution_result = {**(task.execution_result or {}), **result_data}

        if result_data.get("actual_cost") is not None:
            task.actual_cost_usd = result_data["actual_cost"]
        if result_data.get("execution_time_seconds") is not None:
            task.actual_duration_min = int(
                math.floor(result_data["execution_time_seconds"] / 60 + 0.5)
            )
        if result_data.get("model_used"):
            metadata["last_model_used"] = result_data["model_used"]
            metadata_changed = True
        if result_data.get("provider_used"):
            metadata["last_provider_used"] = result_data["provider_used"]
            metadata_changed = True

    if new_status == AITaskStatus.failed:
        metadata["retry_count"] = int(metadata.get("retry_count") or 0) + 1
        metadata_changed = True

    if metadata_changed:
        task.metadata_ = AITaskMetadata.from_storage(metadata).to_storage()

    await session.commit()
    await session.refresh(task)

    logger.info(
        "ai_task_status_updated",
        task_id=task_id,
        old_status=old_status.value,
        new_status=new_status.value,
        has_result=bool(result_data),
    )
    return task


async def delete_ai_task(
    session: AsyncSession,
    user_id: str,
    task_id: str,
) -> bool:
    """Delete an AI task.

    Returns:
        True if a row was deleted, False if none matched.
    """
    stmt = delete(AITask).where(AITask.user_id == user_id, AITask.id == task_id)
    result = await session.execute(stmt)
    await session.commit()

    deleted = (result.rowcount or 0) > 0
    logger.info("ai_task_row_deleted", task_id=task_id, deleted=deleted)
    return deleted


async def get_ai_task_statistics(
    session: AsyncSession,
    user_id: str,
) -> dict[str, Any]:
    """Aggregate status, type and cost figures for a user's AI tasks.

    Returns:
        Dictionary with ``total_tasks``, ``status_counts``, ``type_counts``
        and ``cost_statistics``.
    """
    status_rows = await session.execute(
        select(AITask.status, func.count())
        .where(AITask.user_id == user_id)
        .group_by(AITask.status)
    )
    status_counts = {status.value: count for status, count in status_rows.all()}

    type_rows = await session.execute(
        select(AITask.task_type, func.count())
        .where(AITask.user_id == user_id)
        .group_by(AITask.task_type)
    )
    type_counts = {task_type.value: count for task_type, count in type_rows.all()}

    cost_row = (
        await session.execute(
            select(
                func.coalesce(func.sum(AITask.actual_cost_usd), 0.0),
                func.coalesce(func.sum(AITask.estimated_cost_usd), 0.0),
                func.count(),
            ).where(AITask.user_id == user_id, AITask.actual_cost_usd.is_not(None))
        )
    ).one()

    return {
        "total_tasks": sum(status_counts.values()),
        "status_counts": status_counts,
        "type_counts": type_counts,
        "cost_statistics": {
            "total_actual_cost": float(cost_row[0]),
            "total_estimated_cost": float(cost_row[1]),
            "completed_tasks_with_cost": int(cost_row[2]),
        },
    }
