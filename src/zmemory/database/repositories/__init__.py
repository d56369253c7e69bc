"""Repositories wrapping the zmemory query functions."""

from zmemory.database.repositories.ai_task import (
    SQLAlchemyAITaskRepository,
    SQLAlchemyTaskRepository,
)
from zmemory.database.repositories.protocols import AITaskRepository, TaskRepository

__all__ = [
    "AITaskRepository",
    "TaskRepository",
    "SQLAlchemyAITaskRepository",
    "SQLAlchemyTaskRepository",
]
