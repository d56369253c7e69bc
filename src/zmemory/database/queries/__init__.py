"""Query functions for zmemory database operations.

This package provides async query functions for all zmemory database
models, organized by entity type.
"""

from zmemory.database.queries import ai_task, task

__all__ = ["ai_task", "task"]
