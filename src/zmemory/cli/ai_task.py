"""AI task CLI commands.

This module provides CLI commands for listing, creating, and driving AI
tasks through their lifecycle. Every command acts as the user given to the
top-level ``--user`` option.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Annotated, Any, Optional, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from zmemory.schemas.ai_task import AITaskRecord
from zmemory.services.ai_task import AITaskService
from zmemory.services.errors import ValidationError
from zmemory.services.results import ServiceResult

app = typer.Typer(help="AI task management commands")
console = Console()

T = TypeVar("T")

STATUS_COLORS = {
    "pending": "dim",
    "assigned": "cyan",
    "in_progress": "blue",
    "paused": "yellow",
    "completed": "green",
    "failed": "red",
    "cancelled": "red dim",
}


def _run(
    action: str,
    operation: Callable[[AITaskService], Awaitable[ServiceResult[T]]],
) -> ServiceResult[T]:
    """Run a service call to completion, exiting with code 1 on failure."""
    from zmemory.main import get_app_context

    ctx = get_app_context()

    async def _call() -> ServiceResult[T]:
        try:
            return await operation(ctx.build_ai_task_service())
        finally:
            await ctx.engine.dispose()

    try:
        result = asyncio.run(_call())
    except Exception as e:
        console.print(f"[red]Error {action}:[/red] {e}")
        raise typer.Exit(code=1)

    if result.error is not None:
        console.print(f"[red]Error {action}:[/red] {result.error.message}")
        if isinstance(result.error, ValidationError) and result.error.details:
            for message in result.error.errors:
                console.print(f"  [red]-[/red] {message}")
        raise typer.Exit(code=1)
    return result


def _status_markup(status: str) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def _money(value: float | None) -> str:
    return f"${value:.4f}" if value is not None else "-"


def _task_panel(task: AITaskRecord, title: str, border_style: str = "green") -> Panel:
    lines = [
        f"[bold]ID:[/bold] {task.id}",
        f"[bold]Objective:[/bold] {task.objective}",
        f"[bold]Type:[/bold] {task.task_type.value}",
        f"[bold]Agent:[/bold] {task.agent_id}",
        f"[bold]Related task:[/bold] {task.task_id or '-'}",
        f"[bold]Status:[/bold] {_status_markup(task.status.value)}",
        f"[bold]Mode:[/bold] {task.mode.value}",
        f"[bold]Priority:[/bold] {task.priority or '-'}",
        f"[bold]Tags:[/bold] {', '.join(task.tags) or '-'}",
        f"[bold]Retries:[/bold] {task.metadata.retry_count}/{task.metadata.max_retries}",
        f"[bold]Estimated cost:[/bold] {_money(task.estimated_cost_usd)}",
        f"[bold]Actual cost:[/bold] {_money(task.actual_cost_usd)}",
    ]
    if task.due_at:
        lines.append(f"[bold]Due:[/bold] {task.due_at.isoformat()}")
    if task.metadata.cancellation_reason:
        lines.append(f"[bold]Cancelled because:[/bold] {task.metadata.cancellation_reason}")
    return Panel("\n".join(lines), title=title, border_style=border_style)


@app.command("list")
def list_tasks(
    status: Annotated[
        Optional[str],
        typer.Option("--status", "-s", help="Filter by status"),
    ] = None,
    task_type: Annotated[
        Optional[str],
        typer.Option("--type", "-t", help="Filter by task type"),
    ] = None,
    agent_id: Annotated[
        Optional[str],
        typer.Option("--agent", "-a", help="Filter by agent id"),
    ] = None,
    priority: Annotated[
        Optional[str],
        typer.Option("--priority", "-p", help="Filter by priority"),
    ] = None,
    tags: Annotated[
        Optional[str],
        typer.Option("--tags", help="Comma-separated tags that must all be present"),
    ] = None,
    search: Annotated[
        Optional[str],
        typer.Option("--search", "-q", help="Text to search for"),
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Page size")] = 50,
    offset: Annotated[int, typer.Option("--offset", help="Page offset")] = 0,
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format (table or json)"),
    ] = "table",
) -> None:
    """List AI tasks."""
    filters: dict[str, Any] = {
        "status": status,
        "task_type": task_type,
        "agent_id": agent_id,
        "priority": priority,
        "tags": tags,
        "search": search,
        "limit": limit,
        "offset": offset,
    }
    filters = {key: value for key, value in filters.items() if value is not None}

    result = _run("listing AI tasks", lambda service: service.find_ai_tasks(filters))
    tasks = result.data or []

    if format == "json":
        output = [task.model_dump(mode="json", by_alias=True) for task in tasks]
        console.print(json.dumps({"tasks": output, "total": result.total}, indent=2))
        return

    if not tasks:
        console.print("[yellow]No AI tasks found[/yellow]")
        return

    table = Table(title=f"AI Tasks ({len(tasks)} of {result.total})")
    table.add_column("ID", style="cyan", no_wrap=True, overflow="fold")
    table.add_column("Objective", style="bold")
    table.add_column("Type", style="blue")
    table.add_column("Status")
    table.add_column("Priority", style="dim")
    table.add_column("Agent", style="blue")
    table.add_column("Est. cost", justify="right", style="dim")

    for task in tasks:
        table.add_row(
            task.id[:8] + "...",
            task.objective,
            task.task_type.value,
            _status_markup(task.status.value),
            task.priority or "-",
            task.agent_id,
            _money(task.estimated_cost_usd),
        )

    console.print(table)


@app.command()
def show(ai_task_id: Annotated[str, typer.Argument(help="AI task id")]) -> None:
    """Show one AI task."""
    result = _run("loading AI task", lambda service: service.find_ai_task_by_id(ai_task_id))
    task = result.unwrap()
    console.print(_task_panel(task, "AI Task", "cyan"))


@app.command()
def create(
    task_id: Annotated[str, typer.Argument(help="Related task id")],
    agent_id: Annotated[str, typer.Argument(help="Agent that will run the task")],
    objective: Annotated[str, typer.Argument(help="What the agent should achieve")],
    task_type: Annotated[
        str,
        typer.Option("--type", "-t", help="Task type (generation, analysis, coding, ...)"),
    ] = "analysis",
    priority: Annotated[
        Optional[str],
        typer.Option("--priority", "-p", help="low, medium, high or urgent"),
    ] = None,
    model: Annotated[
        Optional[str],
        typer.Option("--model", "-m", help="Model name, used for cost estimation"),
    ] = None,
    max_tokens: Annotated[
        Optional[int],
        typer.Option("--max-tokens", help="Token budget"),
    ] = None,
    description: Annotated[
        Optional[str],
        typer.Option("--description", "-d", help="Description used for deliverables and context"),
    ] = None,
    tags: Annotated[
        Optional[str],
        typer.Option("--tags", help="Comma-separated tags"),
    ] = None,
    dependencies: Annotated[
        Optional[str],
        typer.Option("--dependencies", "-D", help="Comma-separated ids this task depends on"),
    ] = None,
    deadline: Annotated[
        Optional[str],
        typer.Option("--deadline", help="ISO 8601 due time"),
    ] = None,
) -> None:
    """Create an AI task delegated from a regular task."""
    request: dict[str, Any] = {
        "task_id": task_id,
        "agent_id": agent_id,
        "objective": objective,
        "task_type": task_type,
        "priority": priority,
        "model": model,
        "max_tokens": max_tokens,
        "description": description,
        "deadline": deadline,
        "tags": tags.split(",") if tags else None,
        "dependencies": dependencies.split(",") if dependencies else None,
    }
    request = {key: value for key, value in request.items() if value is not None}

    result = _run("creating AI task", lambda service: service.create_ai_task(request))
    task = result.unwrap()
    console.print(_task_panel(task, "AI Task Created"))


@app.command()
def status(
    ai_task_id: Annotated[str, typer.Argument(help="AI task id")],
    new_status: Annotated[str, typer.Argument(help="Target status")],
    actual_cost: Annotated[
        Optional[float],
        typer.Option("--actual-cost", help="Actual cost in USD"),
    ] = None,
    execution_time: Annotated[
        Optional[float],
        typer.Option("--execution-time", help="Execution time in seconds"),
    ] = None,
    model_used: Annotated[
        Optional[str],
        typer.Option("--model-used", help="Model the task ran on"),
    ] = None,
    error_message: Annotated[
        Optional[str],
        typer.Option("--error", help="Failure message"),
    ] = None,
) -> None:
    """Move an AI task to a new status, optionally recording its result."""
    execution_result: dict[str, Any] = {
        "actual_cost": actual_cost,
        "execution_time_seconds": execution_time,
        "model_used": model_used,
        "error_message": error_message,
    }
    execution_result = {k: v for k, v in execution_result.items() if v is not None}

    result = _run(
        "updating AI task status",
        lambda service: service.update_task_status(
            ai_task_id, new_status, execution_result or None
        ),
    )
    task = result.unwrap()
    console.print(
        f"[green]Status updated:[/green] {task.id} → "
        f"{_status_markup(task.status.value)}"
    )


@app.command()
def retry(ai_task_id: Annotated[str, typer.Argument(help="AI task id")]) -> None:
    """Send a failed AI task back to pending."""
    result = _run("retrying AI task", lambda service: service.retry_failed_task(ai_task_id))
    task = result.unwrap()
    console.print(_task_panel(task, "AI Task Retried", "yellow"))


@app.command()
def cancel(
    ai_task_id: Annotated[str, typer.Argument(help="AI task id")],
    reason: Annotated[
        Optional[str],
        typer.Option("--reason", "-r", help="Why the task is cancelled"),
    ] = None,
) -> None:
    """Cancel an AI task that has not completed."""
    result = _run("cancelling AI task", lambda service: service.cancel_task(ai_task_id, reason))
    task = result.unwrap()
    console.print(_task_panel(task, "AI Task Cancelled", "red"))


@app.command()
def delete(
    ai_task_id: Annotated[str, typer.Argument(help="AI task id")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete an AI task that is not executing."""
    if not yes:
        typer.confirm(f"Delete AI task {ai_task_id}?", abort=True)
    _run("deleting AI task", lambda service: service.delete_ai_task(ai_task_id))
    console.print(f"[green]Deleted AI task[/green] {ai_task_id}")


@app.command()
def stats() -> None:
    """Show status, type and cost totals."""
    result = _run("loading AI task statistics", lambda service: service.get_task_statistics())
    statistics = result.data or {}

    table = Table(title=f"AI Tasks ({statistics.get('total_tasks', 0)} total)")
    table.add_column("Group", style="bold")
    table.add_column("Value", style="cyan")
    table.add_column("Count", justify="right")

    for key, count in sorted(statistics.get("status_counts", {}).items()):
        table.add_row("status", _status_markup(key), str(count))
    for key, count in sorted(statistics.get("type_counts", {}).items()):
        table.add_row("type", key, str(count))

    console.print(table)

    costs = statistics.get("cost_statistics", {})
    console.print(
        Panel(
            f"[bold]Actual:[/bold] {_money(costs.get('total_actual_cost'))}\n"
            f"[bold]Estimated:[/bold] {_money(costs.get('total_estimated_cost'))}\n"
            f"[bold]Tasks with cost:[/bold] {costs.get('completed_tasks_with_cost', 0)}",
            title="Cost",
            border_style="cyan",
        )
    )


@app.command()
def costs(
    status: Annotated[
        Optional[str],
        typer.Option("--status", "-s", help="Only include tasks with this status"),
    ] = None,
    task_type: Annotated[
        Optional[str],
        typer.Option("--type", "-t", help="Only include tasks of this type"),
    ] = None,
) -> None:
    """Break down cost by model and task type."""
    candidates = {"status": status, "task_type": task_type}
    filters = {key: value for key, value in candidates.items() if value}
    result = _run("analyzing AI task costs", lambda service: service.get_cost_analysis(filters))
    analysis = result.unwrap()

    console.print(
        Panel(
            f"[bold]Estimated:[/bold] {_money(analysis.total_estimated_cost)}\n"
            f"[bold]Actual:[/bold] {_money(analysis.total_actual_cost)}\n"
            f"[bold]Average per task:[/bold] {_money(analysis.average_cost_per_task)}\n"
            f"[bold]Completed / pending / failed:[/bold] "
            f"{analysis.completed_tasks} / {analysis.pending_tasks} / {analysis.failed_tasks}",
            title="Cost Analysis",
            border_style="cyan",
        )
    )

    breakdowns = (("By model", analysis.cost_by_model), ("By type", analysis.cost_by_type))
    for title, buckets in breakdowns:
        if not buckets:
            continue
        table = Table(title=title)
        table.add_column("Name", style="bold")
        table.add_column("Actual cost", justify="right", style="cyan")
        for name, amount in sorted(buckets.items(), key=lambda item: item[1], reverse=True):
            table.add_row(name, _money(amount))
        console.print(table)


@app.command()
def estimate(
    model: Annotated[Optional[str], typer.Argument(help="Model name")] = None,
    max_tokens: Annotated[
        Optional[int],
        typer.Option("--max-tokens", help="Token budget"),
    ] = None,
) -> None:
    """Estimate the cost of running a task on a model."""
    candidates = {"model": model, "max_tokens": max_tokens}
    request = {key: value for key, value in candidates.items() if value}
    result = _run("estimating cost", lambda service: service.estimate_task_cost(request))
    console.print(f"[bold]Estimated cost:[/bold] {_money(result.data)}")
