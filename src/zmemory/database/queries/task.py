"""Regular task query functions for zmemory.

Only the lookups AI task creation needs: confirming that the task an AI
task is delegated from exists for the same user.
"""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zmemory.database.models.task import Task

logger = structlog.get_logger(__name__)


async def get_task(
    session: AsyncSession,
    user_id: str,
    task_id: str,
) -> Task | None:
    """Retrieve a regular task by ID for a user.

    Args:
        session: Active async database session.
        user_id: Owner of the task.
        task_id: ID of the task.

    Returns:
        The Task if it exists and belongs to the user, None otherwise.
    """
    stmt = select(Task).where(Task.user_id == user_id, Task.id == task_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_task(
    session: AsyncSession,
    user_id: str,
    title: str,
    description: str | None = None,
) -> Task:
    """Create a regular task.

    Returns:
        The newly created Task instance.
    """
    task = Task(user_id=user_id, title=title, description=description, status="pending")
    session.add(task)
    await session.commit()
    await session.refresh(task)

    logger.info("task_created", task_id=task.id, user_id=user_id, title=title)
    return task
