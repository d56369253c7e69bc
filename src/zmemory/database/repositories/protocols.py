"""Repository interfaces consumed by the AI task service.

The service only depends on these Protocols, so tests can hand it
in-memory fakes and production code hands it the SQLAlchemy-backed
implementations. Every method returns a ``RepositoryResult`` rather than
raising: ``error`` is set when the persistence layer failed, and
``data`` is None when nothing matched.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from zmemory.schemas.ai_task import AITaskFilterParams, AITaskRecord
from zmemory.services.results import RepositoryResult


@runtime_checkable
class AITaskRepository(Protocol):
    """Persistence operations for AI tasks, always scoped by user."""

    async def find_by_user_and_id(
        self, user_id: str, task_id: str
    ) -> RepositoryResult[AITaskRecord]:
        """Fetch one task; ``data`` is None when it does not exist."""
        ...

    async def find_ai_tasks_advanced(
        self, user_id: str, filters: AITaskFilterParams
    ) -> RepositoryResult[list[AITaskRecord]]:
        """List tasks matching filters; ``total`` counts all matches."""
        ...

    async def create_ai_task(
        self, user_id: str, payload: Mapping[str, Any]
    ) -> RepositoryResult[AITaskRecord]:
        """Insert a task built from ``payload``."""
        ...

    async def update_by_user_and_id(
        self, user_id: str, task_id: str, payload: Mapping[str, Any]
    ) -> RepositoryResult[AITaskRecord]:
        """Apply a partial update."""
        ...

    async def update_task_status(
        self,
        user_id: str,
        task_id: str,
        status: str,
        result_data: Mapping[str, Any] | None = None,
    ) -> RepositoryResult[AITaskRecord]:
        """Change status, stamping timestamps and merging execution results."""
        ...

    async def delete_by_user_and_id(self, user_id: str, task_id: str) -> RepositoryResult[bool]:
        """Delete a task."""
        ...

    async def get_task_statistics(self, user_id: str) -> RepositoryResult[dict[str, Any]]:
        """Status, type and cost aggregates for the user."""
        ...


@runtime_checkable
class TaskRepository(Protocol):
    """Read access to regular tasks."""

    async def find_by_user_and_id(self, user_id: str, task_id: str) -> RepositoryResult[Any]:
        """Fetch one task; ``data`` is None when it does not exist."""
        ...
