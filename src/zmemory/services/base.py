"""Shared plumbing for zmemory services.

Services are plain objects constructed with a ``ServiceContext`` (who is
calling) and their dependencies (repositories). Public methods run their
body through ``safe_operation`` so that typed errors become
``ServiceResult`` failures instead of propagating to the caller.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sized
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, TypeVar

import structlog

from zmemory.services.errors import BusinessRuleError, ServiceError, ValidationError
from zmemory.services.results import ServiceResult

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ServiceContext:
    """Who a service call is made on behalf of.

    Attributes:
        user_id: Owner scope for every repository call.
        request_id: Optional id of the originating request, for log correlation.
    """

    user_id: str | None
    request_id: str | None = None


class BaseService:
    """Base class providing validation helpers and error normalization."""

    service_name = "service"

    def __init__(self, context: ServiceContext):
        self.context = context
        self.logger = logger.bind(
            component=type(self).__name__,
            user_id=context.user_id,
            request_id=context.request_id,
        )

    @property
    def user_id(self) -> str:
        """The caller's user id; only valid after validate_user_access."""
        return self.context.user_id  # type: ignore[return-value]

    # --- Validation helpers ---

    def validate_user_access(self) -> None:
        """Require a user context."""
        if not self.context.user_id:
            raise ServiceError("User context required", "UNAUTHORIZED", 401)

    @staticmethod
    def validate_required(value: Any, name: str) -> None:
        """Require a value that is not None or an empty string."""
        if value is None or (isinstance(value, str) and value.strip() == ""):
            raise ValidationError(f"{name} is required")

    @staticmethod
    def validate_array_length(
        items: Sized | None,
        field_name: str,
        min_items: int | None = None,
        max_items: int | None = None,
    ) -> None:
        """Bound the number of items in a list argument."""
        length = len(items) if items is not None else 0
        if min_items is not None and length < min_items:
            raise ValidationError(f"{field_name} must have at least {min_items} items")
        if max_items is not None and length > max_items:
            raise ValidationError(f"{field_name} cannot have more than {max_items} items")

    @staticmethod
    def validate_business_rule(condition: bool, message: str, details: Any | None = None) -> None:
        """Raise a BusinessRuleError unless ``condition`` holds."""
        if not condition:
            raise BusinessRuleError(message, details)

    # --- Error handling ---

    async def safe_operation(
        self,
        operation: Callable[[], Awaitable[T]],
        error_message: str = "Operation failed",
    ) -> ServiceResult[T]:
        """Run ``operation`` and wrap its outcome in a ServiceResult.

        ServiceError subclasses are returned as-is. Anything else is logged
        with its traceback and reported as an INTERNAL_ERROR.
        """
        try:
            return ServiceResult.success(await operation())
        except ServiceError as exc:
            self.logger.debug(
                "service_operation_rejected",
                code=exc.code,
                error=exc.message,
            )
            return ServiceResult.failure(exc)
        except Exception:
            self.logger.error(
                "service_operation_failed", error_message=error_message, exc_info=True
            )
            return ServiceResult.failure(ServiceError(error_message, "INTERNAL_ERROR", 500))

    # --- Logging ---

    def log_operation(self, level: str, operation: str, **details: Any) -> None:
        """Emit a structured ``<service>_<operation>`` log event."""
        log_method = getattr(self.logger, level)
        log_method(f"{self.service_name}_{operation}", **details)

    @staticmethod
    def utcnow() -> datetime:
        return datetime.now(timezone.utc)
