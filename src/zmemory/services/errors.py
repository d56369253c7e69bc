"""Typed errors raised inside zmemory services.

Every error carries a machine-readable ``code`` and the HTTP status the
web layer should answer with. Services never let these escape their
public methods; ``BaseService.safe_operation`` converts them into
``ServiceResult`` values.
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """Base class for service-level failures.

    Attributes:
        message: Human readable description.
        code: Machine readable error code.
        status_code: HTTP status the error maps to.
        details: Optional structured details (e.g. a list of violations).
    """

    def __init__(
        self,
        message: str,
        code: str = "SERVICE_ERROR",
        status_code: int = 500,
        details: Any | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses."""
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(ServiceError):
    """Bad input shape or range, possibly aggregating several violations."""

    def __init__(self, message: str, details: Any | None = None):
        super().__init__(message, "VALIDATION_ERROR", 400, details)

    @property
    def errors(self) -> list[str]:
        """Individual violation messages, or the message itself."""
        if isinstance(self.details, dict) and isinstance(self.details.get("errors"), list):
            return list(self.details["errors"])
        return [self.message]


class BusinessRuleError(ServiceError):
    """A request that is well-formed but not allowed in the current state."""

    def __init__(self, message: str, details: Any | None = None):
        super().__init__(message, "BUSINESS_RULE_VIOLATION", 400, details)


class NotFoundError(ServiceError):
    """A referenced entity does not exist for the current user."""

    def __init__(self, resource: str, resource_id: str | None = None):
        message = (
            f"{resource} with id {resource_id} not found"
            if resource_id
            else f"{resource} not found"
        )
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(message, "NOT_FOUND", 404)


class RepositoryError(ServiceError):
    """The persistence layer failed."""

    def __init__(self, message: str, db_code: str | None = None):
        self.db_code = db_code
        details = {"db_code": db_code} if db_code else None
        super().__init__(message, "REPOSITORY_ERROR", 500, details)


class InvalidTransitionError(BusinessRuleError):
    """Raised when a status change is not in the transition table.

    Attributes:
        current: Status the task is in.
        target: Status that was requested.
        task_id: The task that failed to transition, if known.
    """

    def __init__(self, current: str, target: str, task_id: str | None = None):
        self.current = current
        self.target = target
        self.task_id = task_id
        super().__init__(
            f"Cannot transition from {current} to {target}",
            {"current": current, "target": target, "task_id": task_id},
        )
