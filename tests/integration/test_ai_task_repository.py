"""Integration tests for the SQLAlchemy repositories.

Runs the AI task service end to end over SQLite to check that records
round-trip through the repositories, that missing rows surface as
NOT_FOUND and that database failures become REPOSITORY_ERROR results.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from zmemory.database.models.task import Task
from zmemory.database.repositories import SQLAlchemyAITaskRepository, SQLAlchemyTaskRepository
from zmemory.schemas.ai_task import AITaskFilterParams
from zmemory.services.ai_task import AITaskService, AITaskServiceDependencies
from zmemory.services.base import ServiceContext
from zmemory.services.errors import NotFoundError, RepositoryError

USER_ID = "user-1"


@pytest.fixture
def service(session_factory: async_sessionmaker[AsyncSession]) -> AITaskService:
    return AITaskService(
        ServiceContext(user_id=USER_ID, request_id="req-int"),
        AITaskServiceDependencies(
            ai_task_repository=SQLAlchemyAITaskRepository(session_factory),
            task_repository=SQLAlchemyTaskRepository(session_factory),
        ),
    )


@pytest.mark.asyncio
async def test_task_lookup(
    session_factory: async_sessionmaker[AsyncSession], parent_task: Task
) -> None:
    repository = SQLAlchemyTaskRepository(session_factory)

    found = await repository.find_by_user_and_id(USER_ID, parent_task.id)
    other_user = await repository.find_by_user_and_id("user-2", parent_task.id)

    assert found.error is None
    assert found.data is not None
    assert found.data.title == "Prepare quarterly report"
    assert other_user.data is None


@pytest.mark.asyncio
async def test_missing_rows(session_factory: async_sessionmaker[AsyncSession]) -> None:
    repository = SQLAlchemyAITaskRepository(session_factory)

    found = await repository.find_by_user_and_id(USER_ID, "missing")
    updated = await repository.update_by_user_and_id(USER_ID, "missing", {"objective": "x"})
    status = await repository.update_task_status(USER_ID, "missing", "in_progress")
    deleted = await repository.delete_by_user_and_id(USER_ID, "missing")

    assert found.data is None and found.error is None
    assert isinstance(updated.error, NotFoundError)
    assert isinstance(status.error, NotFoundError)
    assert deleted.data is False


@pytest.mark.asyncio
async def test_database_failure_becomes_repository_error() -> None:
    session = MagicMock()
    session.__aenter__.side_effect = OperationalError("SELECT 1", {}, Exception("down"))
    repository = SQLAlchemyAITaskRepository(MagicMock(return_value=session))

    result = await repository.find_ai_tasks_advanced(USER_ID, AITaskFilterParams())

    assert isinstance(result.error, RepositoryError)
    assert result.error.message == "Failed to list AI tasks"
    assert result.data is None


@pytest.mark.asyncio
async def test_service_lifecycle(service: AITaskService, parent_task: Task) -> None:
    """Create, run, fail, retry, complete and analyze one task."""
    created = await service.create_ai_task(
        {
            "task_id": parent_task.id,
            "agent_id": "agent-1",
            "objective": "Draft the quarterly summary",
            "task_type": "generation",
            "model": "gpt-4",
            "max_tokens": 2000,
            "tags": ["report", " report "],
            "priority": "high",
        }
    )
    task = created.unwrap()
    assert task.estimated_cost_usd == 0.06
    assert task.priority == "high"
    assert task.tags == ["report"]

    (await service.update_task_status(task.id, "in_progress")).unwrap()
    failed = (
        await service.update_task_status(task.id, "failed", {"error_message": "rate limited"})
    ).unwrap()
    assert failed.metadata.retry_count == 1
    assert failed.completed_at is not None

    retried = (await service.retry_failed_task(task.id)).unwrap()
    assert retried.status.value == "pending"
    assert retried.execution_result is None
    assert retried.metadata.retry_count == 1

    (await service.update_task_status(task.id, "in_progress")).unwrap()
    completed = (
        await service.update_task_status(
            task.id,
            "completed",
            {"success": True, "actual_cost": 0.05, "model_used": "gpt-4"},
        )
    ).unwrap()
    assert completed.actual_cost_usd == 0.05

    listed = await service.find_ai_tasks({"tags": "report", "priority": "high"})
    assert listed.total == 1

    analysis = (await service.get_cost_analysis()).unwrap()
    assert analysis.completed_tasks == 1
    assert analysis.cost_by_model == {"gpt-4": pytest.approx(0.05)}

    cancelled = await service.cancel_task(task.id)
    assert cancelled.error is not None
    assert cancelled.error.message == "Cannot cancel completed task"

    deleted = await service.delete_ai_task(task.id)
    assert deleted.unwrap() is True
    assert isinstance((await service.find_ai_task_by_id(task.id)).error, NotFoundError)
