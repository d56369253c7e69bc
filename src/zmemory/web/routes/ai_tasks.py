"""AI task REST API endpoints for zmemory.

Thin HTTP layer over ``AITaskService``. Request bodies are taken as plain
JSON objects and validated by the service, so every validation problem is
reported together in one 400 response rather than as a FastAPI 422.
Service failures are raised as ``ServiceError`` and rendered by the
application's exception handler.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends, Header, Request

from zmemory.config import ZMemoryConfig
from zmemory.database.repositories import SQLAlchemyAITaskRepository, SQLAlchemyTaskRepository
from zmemory.logging import get_correlation_id
from zmemory.schemas.ai_task import AITaskRecord
from zmemory.services.ai_task import AITaskService, AITaskServiceDependencies
from zmemory.services.base import ServiceContext
from zmemory.services.errors import ValidationError
from zmemory.services.results import ServiceResult

logger = structlog.get_logger(__name__)


# --- Dependency Injection ---


def get_user_id(x_user_id: str | None = Header(default=None)) -> str | None:
    """Caller identity from the X-User-Id header."""
    return x_user_id.strip() if x_user_id else None


def get_ai_task_service(
    request: Request,
    user_id: str | None = Depends(get_user_id),  # noqa: B008
) -> AITaskService:
    """Build a request-scoped AITaskService from app state.

    Args:
        request: Incoming FastAPI request.
        user_id: Caller identity.

    Returns:
        Service bound to the caller and the app's session factory.
    """
    session_factory = request.app.state.session_factory
    config: ZMemoryConfig = request.app.state.config
    return AITaskService(
        ServiceContext(user_id=user_id, request_id=get_correlation_id()),
        AITaskServiceDependencies(
            ai_task_repository=SQLAlchemyAITaskRepository(session_factory),
            task_repository=SQLAlchemyTaskRepository(session_factory),
        ),
        config.ai_tasks,
    )


# --- Serialization ---


def _task(record: AITaskRecord) -> dict[str, Any]:
    return record.model_dump(mode="json", by_alias=True)


def _task_result(result: ServiceResult[AITaskRecord]) -> dict[str, Any]:
    return {"task": _task(result.unwrap())}


def _task_list(result: ServiceResult[list[AITaskRecord]]) -> dict[str, Any]:
    records = result.unwrap() or []
    return {"tasks": [_task(record) for record in records], "total": result.total or 0}


def _require_object(body: Any, name: str = "Request body") -> dict[str, Any]:
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError(f"{name} must be an object")
    return body


def create_ai_tasks_router() -> APIRouter:
    """Create the /ai-tasks router.

    Returns:
        Configured APIRouter. Fixed paths are registered before ``/{task_id}``
        so they are not captured as ids.
    """
    router = APIRouter(prefix="/ai-tasks", tags=["ai-tasks"])

    @router.get("/")
    async def list_ai_tasks(
        request: Request,
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        """List AI tasks; filters, sort and pagination come from the query string."""
        filters = dict(request.query_params)
        return _task_list(await service.find_ai_tasks(filters))

    @router.post("/", status_code=201)
    async def create_ai_task(
        body: Any = Body(default=None),  # noqa: B008
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        result = await service.create_ai_task(_require_object(body))
        return _task_result(result)

    @router.get("/statistics")
    async def task_statistics(
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        return (await service.get_task_statistics()).unwrap() or {}

    @router.get("/cost-analysis")
    async def cost_analysis(
        request: Request,
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        analysis = (await service.get_cost_analysis(dict(request.query_params))).unwrap()
        return analysis.model_dump(mode="json")

    @router.post("/estimate-cost")
    async def estimate_cost(
        body: Any = Body(default=None),  # noqa: B008
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        estimate = (await service.estimate_task_cost(_require_object(body))).unwrap()
        return {"estimated_cost": estimate}

    @router.post("/batch")
    async def create_batch(
        body: Any = Body(default=None),  # noqa: B008
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        """Create several tasks; partial success is reported in ``errors``."""
        summary = (await service.create_batch_tasks(_require_object(body))).unwrap()
        return summary.model_dump(mode="json")

    @router.post("/batch/execute")
    async def execute_batch(
        body: Any = Body(default=None),  # noqa: B008
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        """Mark the given tasks in_progress."""
        payload = _require_object(body)
        summary = (
            await service.execute_batch(payload.get("task_ids") or [], payload.get("context"))
        ).unwrap()
        return summary.model_dump(mode="json")

    @router.get("/by-agent/{agent_id}")
    async def tasks_by_agent(
        agent_id: str,
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        return _task_list(await service.get_tasks_by_agent(agent_id))

    @router.get("/by-parent/{parent_task_id}")
    async def tasks_by_parent(
        parent_task_id: str,
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        return _task_list(await service.get_tasks_by_parent(parent_task_id))

    @router.get("/{task_id}")
    async def get_ai_task(
        task_id: str,
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        return _task_result(await service.find_ai_task_by_id(task_id))

    @router.put("/{task_id}")
    async def update_ai_task(
        task_id: str,
        body: Any = Body(default=None),  # noqa: B008
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        return _task_result(await service.update_ai_task(task_id, _require_object(body)))

    @router.delete("/{task_id}")
    async def delete_ai_task(
        task_id: str,
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        deleted = (await service.delete_ai_task(task_id)).unwrap()
        return {"success": bool(deleted)}

    @router.put("/{task_id}/status")
    async def update_status(
        task_id: str,
        body: Any = Body(default=None),  # noqa: B008
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        """Body: ``{"status": ..., "result": {...}}``."""
        payload = _require_object(body)
        if not payload.get("status"):
            raise ValidationError("status is required")
        result = await service.update_task_status(
            task_id, payload["status"], payload.get("result")
        )
        return _task_result(result)

    @router.post("/{task_id}/retry")
    async def retry_task(
        task_id: str,
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        return _task_result(await service.retry_failed_task(task_id))

    @router.post("/{task_id}/cancel")
    async def cancel_task(
        task_id: str,
        body: Any = Body(default=None),  # noqa: B008
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        reason = _require_object(body).get("reason")
        return _task_result(await service.cancel_task(task_id, reason))

    @router.post("/{task_id}/schedule")
    async def schedule_task(
        task_id: str,
        body: Any = Body(default=None),  # noqa: B008
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        """Body: ``{"scheduled_for": "<ISO datetime>"}``."""
        scheduled_for = _require_object(body).get("scheduled_for")
        if not scheduled_for:
            raise ValidationError("scheduled_for is required")
        return _task_result(await service.schedule_task(task_id, scheduled_for))

    @router.post("/{task_id}/validate")
    async def validate_execution(
        task_id: str,
        body: Any = Body(default=None),  # noqa: B008
        service: AITaskService = Depends(get_ai_task_service),  # noqa: B008
    ) -> dict[str, Any]:
        """Check whether the task may run now; body is the execution context."""
        task = (await service.find_ai_task_by_id(task_id)).unwrap()
        outcome = await service.validate_task_execution(task, _require_object(body))
        if outcome.error is not None:
            if isinstance(outcome.error, ValidationError):
                return {"valid": False, "errors": outcome.error.errors}
            raise outcome.error
        return {"valid": True, "errors": []}

    return router
