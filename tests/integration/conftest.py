"""Pytest fixtures for integration tests.

Provides async database fixtures backed by an in-memory SQLite database
and an HTTP client for the FastAPI app wired to the same database.
Production runs on PostgreSQL; the queries avoid PostgreSQL-only
operators so the same code paths run here.
"""

from __future__ import annotations

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from zmemory.config import ZMemoryConfig
from zmemory.database.connection import get_session_factory
from zmemory.database.models import Base
from zmemory.database.models.task import Task
from zmemory.database.queries.task import create_task
from zmemory.web.app import create_app

USER_ID = "user-1"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio as the async backend for pytest-asyncio.

    Returns:
        The name of the async backend to use.
    """
    return "asyncio"


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite async engine for testing.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.

    Yields:
        Configured AsyncEngine instance using in-memory SQLite.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine, configured like production."""
    return get_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a new async database session for each test.

    Yields:
        AsyncSession instance for the test.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def parent_task(session_factory: async_sessionmaker[AsyncSession]) -> Task:
    """A regular task owned by USER_ID that AI tasks can be delegated from."""
    async with session_factory() as session:
        return await create_task(session, USER_ID, "Prepare quarterly report")


@pytest.fixture
def app(session_factory: async_sessionmaker[AsyncSession]) -> FastAPI:
    """FastAPI app using the test database.

    ASGITransport does not run the lifespan, so the session factory is
    placed on app state directly.
    """
    application = create_app(ZMemoryConfig())
    application.state.session_factory = session_factory
    return application


@pytest_asyncio.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client acting as USER_ID.

    Yields:
        AsyncClient configured to test the application.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-User-Id": USER_ID},
    ) as client:
        yield client
