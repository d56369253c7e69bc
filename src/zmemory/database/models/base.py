"""SQLAlchemy declarative base and common column mixins for zmemory.

This module defines the DeclarativeBase class and a TimestampMixin that
provides id, created_at, and updated_at columns shared across all models.

Example:
    >>> class MyModel(TimestampMixin, Base):
    ...     __tablename__ = "my_table"
    ...     name: Mapped[str] = mapped_column(Text, nullable=False)
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def generate_id() -> str:
    """Return a new random UUID rendered as a string."""
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """SQLAlchemy 2.0 declarative base for all zmemory models."""

    pass


class TimestampMixin:
    """Mixin providing id, created_at, and updated_at columns.

    Identifiers are UUID strings generated client-side so rows can be
    created against any backend (PostgreSQL in production, SQLite in tests).

    Attributes:
        id: UUID string primary key.
        created_at: Timestamp set by the database on row creation.
        updated_at: Timestamp set by the database on row creation and
                    updated on each modification.
    """

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_id,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
