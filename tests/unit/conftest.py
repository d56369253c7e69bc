"""Pytest fixtures for unit tests.

Provides in-memory repositories implementing the AI task and task
repository interfaces, so service behaviour can be tested without a
database.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import pytest

from zmemory.config import AITaskConfig
from zmemory.schemas.ai_task import AITaskFilterParams, AITaskMetadata, AITaskRecord
from zmemory.services.ai_task import AITaskService, AITaskServiceDependencies
from zmemory.services.base import ServiceContext
from zmemory.services.errors import NotFoundError, RepositoryError
from zmemory.services.results import RepositoryResult

USER_ID = "user-1"
RELATED_TASK_ID = "task-1"

TERMINAL = {"completed", "failed", "cancelled"}


class FakeAITaskRepository:
    """Dictionary-backed AITaskRepository."""

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.fail_with: Exception | None = None
        self.status_calls: list[tuple[str, str, dict[str, Any] | None]] = []
        self.deleted: list[str] = []

    def seed(self, user_id: str = USER_ID, **fields: Any) -> AITaskRecord:
        now = datetime.now(timezone.utc)
        row: dict[str, Any] = {
            "id": str(uuid4()),
            "user_id": user_id,
            "task_id": RELATED_TASK_ID,
            "agent_id": "agent-1",
            "objective": "Draft release notes",
            "task_type": "generation",
            "mode": "plan_only",
            "status": "pending",
            "dependencies": [],
            "guardrails": {},
            "metadata": {"priority": "medium", "tags": [], "retry_count": 0, "max_retries": 3},
            "is_local_task": False,
            "created_at": now,
            "updated_at": now,
        }
        row.update(fields)
        self.rows[row["id"]] = row
        return AITaskRecord.model_validate(row)

    def _owned(self, user_id: str, task_id: str) -> dict[str, Any] | None:
        row = self.rows.get(task_id)
        if row is None or row["user_id"] != user_id:
            return None
        return row

    async def find_by_user_and_id(
        self, user_id: str, task_id: str
    ) -> RepositoryResult[AITaskRecord]:
        if self.fail_with is not None:
            return RepositoryResult(error=self.fail_with)
        row = self._owned(user_id, task_id)
        return RepositoryResult(data=AITaskRecord.model_validate(row) if row else None)

    async def find_ai_tasks_advanced(
        self, user_id: str, filters: AITaskFilterParams
    ) -> RepositoryResult[list[AITaskRecord]]:
        if self.fail_with is not None:
            return RepositoryResult(error=self.fail_with)

        rows = [row for row in self.rows.values() if row["user_id"] == user_id]
        if filters.agent_id:
            rows = [row for row in rows if row["agent_id"] == filters.agent_id]
        if filters.status is not None:
            rows = [row for row in rows if row["status"] == filters.status.value]
        if filters.task_type is not None:
            rows = [row for row in rows if row["task_type"] == filters.task_type.value]
        if filters.parent_task_id:
            rows = [row for row in rows if filters.parent_task_id in row["dependencies"]]
        if filters.tags:
            rows = [
                row
                for row in rows
                if set(filters.tags).issubset(row["metadata"].get("tags") or [])
            ]

        page = rows[filters.offset : filters.offset + filters.limit]
        return RepositoryResult(
            data=[AITaskRecord.model_validate(row) for row in page],
            total=len(rows),
        )

    async def create_ai_task(
        self, user_id: str, payload: Mapping[str, Any]
    ) -> RepositoryResult[AITaskRecord]:
        if self.fail_with is not None:
            return RepositoryResult(error=self.fail_with)
        return RepositoryResult(data=self.seed(user_id=user_id, **dict(payload)))

    async def update_by_user_and_id(
        self, user_id: str, task_id: str, payload: Mapping[str, Any]
    ) -> RepositoryResult[AITaskRecord]:
        row = self._owned(user_id, task_id)
        if row is None:
            return RepositoryResult(error=NotFoundError("AI Task", task_id))
        row.update(payload)
        return RepositoryResult(data=AITaskRecord.model_validate(row))

    async def update_task_status(
        self,
        user_id: str,
        task_id: str,
        status: str,
        result_data: Mapping[str, Any] | None = None,
    ) -> RepositoryResult[AITaskRecord]:
        self.status_calls.append((task_id, status, dict(result_data) if result_data else None))
        row = self._owned(user_id, task_id)
        if row is None:
            return RepositoryResult(error=NotFoundError("AI Task", task_id))

        now = datetime.now(timezone.utc)
        row["status"] = status
        if status == "in_progress" and row.get("started_at") is None:
            row["started_at"] = now
        if status in TERMINAL and row.get("completed_at") is None:
            row["completed_at"] = now

        metadata = dict(row["metadata"])
        if result_data:
            row["execution_result"] = {**(row.get("execution_result") or {}), **result_data}
            if result_data.get("actual_cost") is not None:
                row["actual_cost_usd"] = result_data["actual_cost"]
            if result_data.get("model_used"):
                metadata["last_model_used"] = result_data["model_used"]
        if status == "failed":
            metadata["retry_count"] = int(metadata.get("retry_count") or 0) + 1
        row["metadata"] = AITaskMetadata.from_storage(metadata).to_storage()
        return RepositoryResult(data=AITaskRecord.model_validate(row))

    async def delete_by_user_and_id(self, user_id: str, task_id: str) -> RepositoryResult[bool]:
        row = self._owned(user_id, task_id)
        if row is None:
            return RepositoryResult(data=False)
        del self.rows[task_id]
        self.deleted.append(task_id)
        return RepositoryResult(data=True)

    async def get_task_statistics(self, user_id: str) -> RepositoryResult[dict[str, Any]]:
        if self.fail_with is not None:
            return RepositoryResult(error=self.fail_with)
        rows = [row for row in self.rows.values() if row["user_id"] == user_id]
        status_counts: dict[str, int] = {}
        for row in rows:
            status_counts[row["status"]] = status_counts.get(row["status"], 0) + 1
        return RepositoryResult(data={"total_tasks": len(rows), "status_counts": status_counts})


class FakeTaskRepository:
    """Regular task lookup backed by a set of (user_id, task_id) pairs."""

    def __init__(self) -> None:
        self.tasks: set[tuple[str, str]] = {(USER_ID, RELATED_TASK_ID)}

    async def find_by_user_and_id(self, user_id: str, task_id: str) -> RepositoryResult[Any]:
        if (user_id, task_id) in self.tasks:
            return RepositoryResult(data={"id": task_id, "user_id": user_id})
        return RepositoryResult(data=None)


@pytest.fixture
def ai_task_repo() -> FakeAITaskRepository:
    return FakeAITaskRepository()


@pytest.fixture
def task_repo() -> FakeTaskRepository:
    return FakeTaskRepository()


@pytest.fixture
def service(ai_task_repo: FakeAITaskRepository, task_repo: FakeTaskRepository) -> AITaskService:
    """AITaskService acting as USER_ID over the fake repositories."""
    return AITaskService(
        ServiceContext(user_id=USER_ID, request_id="req-1"),
        AITaskServiceDependencies(ai_task_repository=ai_task_repo, task_repository=task_repo),
        AITaskConfig(),
    )


@pytest.fixture
def anonymous_service(
    ai_task_repo: FakeAITaskRepository, task_repo: FakeTaskRepository
) -> AITaskService:
    """AITaskService without a user context."""
    return AITaskService(
        ServiceContext(user_id=None),
        AITaskServiceDependencies(ai_task_repository=ai_task_repo, task_repository=task_repo),
    )


@pytest.fixture
def repository_failure() -> RepositoryError:
    return RepositoryError("Failed to load AI task", "08006")
