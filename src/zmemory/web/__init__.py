"""HTTP API for zmemory.

FastAPI application exposing the AI task service under ``/ai-tasks``
plus health endpoints.
"""

from __future__ import annotations

from zmemory.web.app import create_app
from zmemory.web.middleware import RequestLoggingMiddleware

__all__ = ["create_app", "RequestLoggingMiddleware"]
