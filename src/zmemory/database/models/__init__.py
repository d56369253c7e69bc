"""SQLAlchemy ORM models for zmemory.

This module defines the database schema for regular tasks and the AI
tasks delegated from them.

All models use SQLAlchemy 2.0 declarative style with Mapped[] type annotations.
"""

from zmemory.database.models.ai_task import (
    AITask,
    AITaskMode,
    AITaskPriority,
    AITaskStatus,
    AITaskType,
)
from zmemory.database.models.base import Base, TimestampMixin
from zmemory.database.models.task import Task

__all__ = [
    "Base",
    "TimestampMixin",
    "Task",
    "AITask",
    "AITaskMode",
    "AITaskPriority",
    "AITaskStatus",
    "AITaskType",
]
