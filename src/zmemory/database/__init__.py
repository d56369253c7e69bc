"""Database layer for zmemory.

This module handles database connections and session management, and
provides the SQLAlchemy async engine configuration for PostgreSQL (and
SQLite for local development and tests).

Public API:
    get_engine: Create an AsyncEngine from DatabaseConfig.
    get_session_factory: Create an async_sessionmaker from an engine.
    Base: SQLAlchemy declarative base for all models.
"""

from zmemory.database.connection import get_engine, get_session_factory
from zmemory.database.models import (
    AITask,
    AITaskMode,
    AITaskPriority,
    AITaskStatus,
    AITaskType,
    Base,
    Task,
    TimestampMixin,
)

__all__ = [
    "get_engine",
    "get_session_factory",
    "Base",
    "TimestampMixin",
    "Task",
    "AITask",
    "AITaskMode",
    "AITaskPriority",
    "AITaskStatus",
    "AITaskType",
]
