"""Regular task model for zmemory.

AI tasks are delegated from regular tasks; this table is only consulted
to confirm that the task an AI task points at exists for the same user.
"""

from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from zmemory.database.models.base import Base, TimestampMixin


class Task(TimestampMixin, Base):
    """A user's regular (human-owned) task.

    Attributes:
        id: UUID string primary key (from TimestampMixin).
        user_id: Owner of the task.
        title: Short description of the task.
        description: Optional longer description.
        status: Free-form status string managed by the task board.
    """

    __tablename__ = "tasks"

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
