"""FastAPI application factory for zmemory.

This module provides the application factory that creates and configures
a FastAPI application with:
- CORS middleware for the web frontend
- Request logging middleware with correlation IDs
- Database connection lifecycle management
- A handler rendering service errors as JSON
- Health and AI task endpoints

Example usage:
    >>> from zmemory.config import ZMemoryConfig
    >>> from zmemory.web.app import create_app
    >>>
    >>> app = create_app(ZMemoryConfig())
    >>>
    >>> import uvicorn
    >>> uvicorn.run(app, host="0.0.0.0", port=8000)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from zmemory import __version__
from zmemory.config import ZMemoryConfig
from zmemory.database.connection import get_engine, get_session_factory
from zmemory.logging import get_logger
from zmemory.services.errors import ServiceError
from zmemory.web.middleware import RequestLoggingMiddleware
from zmemory.web.routes.ai_tasks import create_ai_tasks_router
from zmemory.web.routes.health import create_health_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the engine and session factory on startup, dispose on shutdown.

    Args:
        app: FastAPI application instance; ``app.state.config`` must be set.

    Yields:
        None after startup, cleans up on context exit
    """
    config: ZMemoryConfig = app.state.config

    logger.info("app_startup_begin", host=config.web.host, port=config.web.port)

    engine = get_engine(config.database)
    app.state.engine = engine
    app.state.session_factory = get_session_factory(engine)

    logger.info(
        "database_pool_initialized",
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )

    yield

    logger.info("app_shutdown_begin")
    await engine.dispose()
    logger.info("database_pool_disposed")


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Render a ServiceError as ``{"error", "code", "details"}`` with its status."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "service_error_response",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
        error=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(config: ZMemoryConfig | None = None) -> FastAPI:
    """Create and configure a FastAPI application.

    Args:
        config: Optional ZMemoryConfig. If None, creates default config.

    Returns:
        Configured FastAPI application instance.
    """
    if config is None:
        config = ZMemoryConfig()

    app = FastAPI(
        title="zmemory",
        version=__version__,
        description="AI task lifecycle service",
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.web.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(ServiceError, service_error_handler)

    app.include_router(create_health_router())
    app.include_router(create_ai_tasks_router())

    logger.info("app_created", cors_origins=config.web.cors_origins, version=__version__)

    return app
