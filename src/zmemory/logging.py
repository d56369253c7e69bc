"""Structured logging configuration for zmemory.

This module configures structlog with support for:
- JSON and console output formats
- File rotation based on size
- Correlation IDs for request tracing
- User and request context binding

The logging system integrates structlog with Python's stdlib logging
for handlers (file rotation), while using structlog exclusively for
actual log emission.

Example usage:
    >>> from zmemory.config import LoggingConfig
    >>> from zmemory.logging import setup_logging, get_logger, bind_user_context
    >>>
    >>> setup_logging(LoggingConfig(level="INFO", format="json"))
    >>> logger = get_logger(__name__)
    >>> bind_user_context(user_id="u-123", request_id="r-456")
    >>> logger.info("ai_task_created", task_id="t-1")
"""

from __future__ import annotations

import contextvars
import logging
import logging.handlers
import sys
from typing import Any

import structlog

from zmemory.config import LoggingConfig

# Set per request by RequestLoggingMiddleware
_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


def add_correlation_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add correlation_id to log event if set in context.

    Args:
        logger: Logger instance (unused, required by structlog protocol)
        method_name: Log method name (unused, required by structlog protocol)
        event_dict: Current event dictionary to augment

    Returns:
        Event dictionary with correlation_id added if available
    """
    correlation_id = _correlation_id.get()
    if correlation_id is not None:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def set_correlation_id(correlation_id: str | None) -> None:
    """Set correlation ID for current context.

    Args:
        correlation_id: Correlation ID string or None to clear
    """
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    """Get current correlation ID from context."""
    return _correlation_id.get()


def bind_user_context(user_id: str, request_id: str | None = None) -> None:
    """Bind user and request identifiers to all subsequent logs.

    Args:
        user_id: Identifier of the user the current work is scoped to
        request_id: Optional identifier of the originating request
    """
    context: dict[str, Any] = {"user_id": user_id}
    if request_id is not None:
        context["request_id"] = request_id
    structlog.contextvars.bind_contextvars(**context)


def setup_logging(config: LoggingConfig) -> None:
    """Configure structlog with the given configuration.

    Sets up the complete logging pipeline including:
    - JSON or console rendering based on config.format
    - File rotation if config.file is specified
    - Timestamp, log level, and logger name processors
    - Correlation ID processor

    Args:
        config: Logging configuration from ZMemoryConfig

    Example:
        >>> # Rotated JSON file for the API server
        >>> setup_logging(LoggingConfig(file=Path("/var/log/zmemory.log")))
        >>>
        >>> # Colored console output while working on the CLI
        >>> setup_logging(LoggingConfig(level="DEBUG", format="console"))
    """
    # Level name was normalized to upper case by LoggingConfig
    log_level = getattr(logging, config.level)

    # Root stdlib logger owns the handlers
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    if config.file is not None:
        config.file.parent.mkdir(parents=True, exist_ok=True)

        # Size-based rotation
        handler: logging.Handler = logging.handlers.RotatingFileHandler(
            filename=config.file,
            maxBytes=config.rotation_size_mb * 1024 * 1024,  # MB to bytes
            backupCount=config.retention_count,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler(sys.stdout)

    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    if config.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:  # console
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            # user_id and request_id from bind_user_context
            structlog.contextvars.merge_contextvars,
            add_correlation_id,
            # Tracebacks for logger.exception and exc_info=True
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            # Must stay last
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured structlog BoundLogger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("ai_task_retried", ai_task_id="a-1", retry_count=2)
    """
    return structlog.get_logger(name)
