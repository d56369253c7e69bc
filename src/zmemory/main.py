"""Main CLI entry point for zmemory.

This module provides the main Typer application: the ``serve`` command for
the HTTP API and the ``ai-task`` sub-app for working with AI tasks from a
terminal.

Usage:
    zmemory serve --port 8000
    zmemory --user u-123 ai-task list --status pending
    zmemory --user u-123 ai-task retry <ai-task-id>
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from zmemory.cli import ai_task as ai_task_cli
from zmemory.config import ZMemoryConfig, load_config
from zmemory.database.connection import get_engine, get_session_factory
from zmemory.database.repositories import SQLAlchemyAITaskRepository, SQLAlchemyTaskRepository
from zmemory.logging import bind_user_context, setup_logging
from zmemory.services.ai_task import AITaskService, AITaskServiceDependencies
from zmemory.services.base import ServiceContext

app = typer.Typer(
    name="zmemory",
    help="zmemory: AI task lifecycle service",
    no_args_is_help=True,
)

app.add_typer(ai_task_cli.app, name="ai-task", help="Manage AI tasks")

console = Console()


class AppContext:
    """Application context shared across CLI commands.

    Attributes:
        config: Loaded zmemory configuration
        user_id: User the CLI acts on behalf of
        engine: Async SQLAlchemy engine
        session_factory: Factory for creating database sessions
    """

    def __init__(self, config: ZMemoryConfig, user_id: str | None = None):
        self.config = config
        self.user_id = user_id
        self.engine = get_engine(config.database)
        self.session_factory = get_session_factory(self.engine)

    def build_ai_task_service(self) -> AITaskService:
        """Create an AITaskService scoped to the CLI user."""
        return AITaskService(
            ServiceContext(user_id=self.user_id),
            AITaskServiceDependencies(
                ai_task_repository=SQLAlchemyAITaskRepository(self.session_factory),
                task_repository=SQLAlchemyTaskRepository(self.session_factory),
            ),
            self.config.ai_tasks,
        )


_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Get the shared application context.

    Raises:
        RuntimeError: If context has not been initialized
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(config: ZMemoryConfig, user_id: str | None = None) -> AppContext:
    """Initialize the global application context."""
    global _app_context
    _app_context = AppContext(config, user_id)
    return _app_context


@app.command()
def serve(
    host: Annotated[
        Optional[str],
        typer.Option("--host", "-h", help="Host to bind to (default from config)"),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Port to bind to (default from config)"),
    ] = None,
    reload: Annotated[
        bool,
        typer.Option("--reload", "-r", help="Enable auto-reload (development)"),
    ] = False,
) -> None:
    """Start the zmemory HTTP API server."""
    import uvicorn

    from zmemory.web.app import create_app

    config = get_app_context().config
    bind_host = host or config.web.host
    bind_port = port or config.web.port

    console.print("[bold cyan]Starting zmemory API server[/bold cyan]")
    console.print(f"[dim]Host:[/dim] {bind_host}")
    console.print(f"[dim]Port:[/dim] {bind_port}")
    console.print()

    uvicorn.run(
        create_app(config),
        host=bind_host,
        port=bind_port,
        reload=reload,
        log_level=config.logging.level.lower(),
    )


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
    user_id: Annotated[
        Optional[str],
        typer.Option("--user", "-u", envvar="ZMEMORY_USER_ID", help="User to act as"),
    ] = None,
) -> None:
    """Configure global options and initialize application context.

    Args:
        config_path: Optional path to TOML configuration file
        verbose: Enable debug-level logging
        user_id: User id every ai-task command is scoped to
    """
    try:
        config = load_config(config_path)
    except Exception as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(code=1)

    logging_config = config.logging
    if verbose:
        logging_config = logging_config.model_copy(update={"level": "DEBUG"})
    setup_logging(logging_config)
    if user_id:
        bind_user_context(user_id)

    try:
        initialize_context(config, user_id)
    except Exception as e:
        console.print(f"[red]Error initializing application:[/red] {e}")
        raise typer.Exit(code=1)

    if verbose:
        console.print("[dim]Debug logging enabled[/dim]")


if __name__ == "__main__":
    app()
