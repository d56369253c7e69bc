"""Result containers returned by zmemory services.

Public service methods never raise: they return a ``ServiceResult``
holding either ``data`` or ``error``. List methods also fill ``total``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from zmemory.services.errors import ServiceError

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """Outcome of a service call.

    Attributes:
        data: Payload on success, None on failure.
        error: The failure, None on success.
        total: Total matching rows for list operations.
    """

    data: T | None = None
    error: ServiceError | None = None
    total: int | None = None

    @property
    def ok(self) -> bool:
        """True when the call succeeded."""
        return self.error is None

    @classmethod
    def success(cls, data: T, total: int | None = None) -> ServiceResult[T]:
        return cls(data=data, total=total)

    @classmethod
    def failure(cls, error: ServiceError, total: int | None = None) -> ServiceResult[T]:
        return cls(data=None, error=error, total=total)

    def unwrap(self) -> T:
        """Return data or raise the contained error."""
        if self.error is not None:
            raise self.error
        return self.data  # type: ignore[return-value]


@dataclass
class RepositoryResult(Generic[T]):
    """Outcome of a repository call: ``{data, error}`` plus ``total`` for lists."""

    data: T | None = None
    error: Exception | None = None
    total: int | None = None
