"""zmemory - AI task lifecycle service.

This package manages AI tasks delegated from a user's regular tasks:
validated creation, a status state machine, retry and cancellation,
batch operations, and cost estimation and analytics, exposed over a
FastAPI HTTP API and a Typer CLI.
"""

__version__ = "0.1.0"
