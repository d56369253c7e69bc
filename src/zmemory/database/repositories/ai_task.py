"""SQLAlchemy-backed repositories.

Each call opens its own session from the session factory, runs one of the
query functions, and converts ORM rows into ``AITaskRecord`` values.
Database failures are logged and returned as ``RepositoryError`` inside the
result instead of being raised.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from zmemory.database.queries import ai_task as ai_task_queries
from zmemory.database.queries import task as task_queries
from zmemory.schemas.ai_task import AITaskFilterParams, AITaskRecord, records_from
from zmemory.services.errors import NotFoundError, RepositoryError
from zmemory.services.results import RepositoryResult

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class _SessionRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _run(
        self,
        action: str,
        operation: Callable[[AsyncSession], Awaitable[T]],
    ) -> RepositoryResult[T]:
        try:
            async with self._session_factory() as session:
                return RepositoryResult(data=await operation(session))
        except SQLAlchemyError as exc:
            logger.error("repository_operation_failed", action=action, error=str(exc))
            code = getattr(getattr(exc, "orig", None), "sqlstate", None)
            return RepositoryResult(error=RepositoryError(f"Failed to {action}", code))


def _to_record(row: Any) -> AITaskRecord | None:
    return AITaskRecord.model_validate(row) if row is not None else None


class SQLAlchemyAITaskRepository(_SessionRepository):
    """AI task repository over the ``ai_tasks`` table."""

    async def find_by_user_and_id(
        self, user_id: str, task_id: str
    ) -> RepositoryResult[AITaskRecord]:
        async def op(session: AsyncSession) -> AITaskRecord | None:
            return _to_record(await ai_task_queries.get_ai_task(session, user_id, task_id))

        return await self._run("load AI task", op)

    async def find_ai_tasks_advanced(
        self, user_id: str, filters: AITaskFilterParams
    ) -> RepositoryResult[list[AITaskRecord]]:
        async def op(session: AsyncSession) -> tuple[list[AITaskRecord], int]:
            rows, total = await ai_task_queries.list_ai_tasks(session, user_id, filters)
            return records_from(rows), total

        result = await self._run("list AI tasks", op)
        if result.error is not None:
            return RepositoryResult(error=result.error)
        records, total = result.data  # type: ignore[misc]
        return RepositoryResult(data=records, total=total)

    async def create_ai_task(
        self, user_id: str, payload: Mapping[str, Any]
    ) -> RepositoryResult[AITaskRecord]:
        async def op(session: AsyncSession) -> AITaskRecord | None:
            return _to_record(await ai_task_queries.create_ai_task(session, user_id, payload))

        return await self._run("create AI task", op)

    async def update_by_user_and_id(
        self, user_id: str, task_id: str, payload: Mapping[str, Any]
    ) -> RepositoryResult[AITaskRecord]:
        async def op(session: AsyncSession) -> AITaskRecord | None:
            row = await ai_task_queries.update_ai_task(session, user_id, task_id, payload)
            return _to_record(row)

        result = await self._run("update AI task", op)
        if result.error is None and result.data is None:
            return RepositoryResult(error=NotFoundError("AI Task", task_id))
        return result

    async def update_task_status(
        self,
        user_id: str,
        task_id: str,
        status: str,
        result_data: Mapping[str, Any] | None = None,
    ) -> RepositoryResult[AITaskRecord]:
        async def op(session: AsyncSession) -> AITaskRecord | None:
            row = await ai_task_queries.update_ai_task_status(
                session, user_id, task_id, status, result_data
            )
            return _to_record(row)

        result = await self._run("update AI task status", op)
        if result.error is None and result.data is None:
            return RepositoryResult(error=NotFoundError("AI Task", task_id))
        return result

    async def delete_by_user_and_id(self, user_id: str, task_id: str) -> RepositoryResult[bool]:
        async def op(session: AsyncSession) -> bool:
            return await ai_task_queries.delete_ai_task(session, user_id, task_id)

        return await self._run("delete AI task", op)

    async def get_task_statistics(self, user_id: str) -> RepositoryResult[dict[str, Any]]:
        async def op(session: AsyncSession) -> dict[str, Any]:
            return await ai_task_queries.get_ai_task_statistics(session, user_id)

        return await self._run("load AI task statistics", op)


class SQLAlchemyTaskRepository(_SessionRepository):
    """Read-only repository over the regular ``tasks`` table."""

    async def find_by_user_and_id(self, user_id: str, task_id: str) -> RepositoryResult[Any]:
        async def op(session: AsyncSession) -> Any:
            return await task_queries.get_task(session, user_id, task_id)

        return await self._run("load task", op)
