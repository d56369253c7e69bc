"""FastAPI route definitions for zmemory."""

from __future__ import annotations

from zmemory.web.routes.ai_tasks import create_ai_tasks_router, get_ai_task_service
from zmemory.web.routes.health import (
    HealthResponse,
    ReadinessResponse,
    create_health_router,
)

__all__ = [
    "create_ai_tasks_router",
    "get_ai_task_service",
    "HealthResponse",
    "ReadinessResponse",
    "create_health_router",
]
