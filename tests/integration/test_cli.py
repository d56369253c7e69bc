"""Integration tests for the ai-task CLI commands.

Commands run through the real Typer app against a file-backed SQLite
database selected with ZMEMORY_DATABASE__URL.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

import pytest
from typer.testing import CliRunner, Result

from zmemory.config import DatabaseConfig
from zmemory.database.connection import get_engine, get_session_factory
from zmemory.database.models import Base
from zmemory.database.queries.ai_task import list_ai_tasks
from zmemory.database.queries.task import create_task
from zmemory.main import app
from zmemory.schemas.ai_task import AITaskFilterParams

USER_ID = "user-1"


@dataclass
class CliDatabase:
    url: str
    parent_task_id: str

    def ai_task_ids(self) -> list[str]:
        async def load() -> list[str]:
            engine = get_engine(DatabaseConfig(url=self.url))
            try:
                async with get_session_factory(engine)() as session:
                    rows, _ = await list_ai_tasks(session, USER_ID, AITaskFilterParams())
                    return [row.id for row in rows]
            finally:
                await engine.dispose()

        return asyncio.run(load())


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI runner."""
    return CliRunner()


@pytest.fixture
def cli_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> CliDatabase:
    """Point the CLI at a fresh database holding one regular task."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("ZMEMORY_DATABASE__URL", url)
    monkeypatch.delenv("ZMEMORY_USER_ID", raising=False)

    async def prepare() -> str:
        engine = get_engine(DatabaseConfig(url=url))
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with get_session_factory(engine)() as session:
            task = await create_task(session, USER_ID, "Plan the offsite")
        await engine.dispose()
        return task.id

    return CliDatabase(url=url, parent_task_id=asyncio.run(prepare()))


def invoke(runner: CliRunner, *args: str) -> Result:
    return runner.invoke(app, ["--user", USER_ID, "ai-task", *args])


def text_of(result: Result) -> str:
    """Output with Rich line wrapping collapsed."""
    return " ".join(result.output.split())


def create_ai_task(runner: CliRunner, cli_db: CliDatabase, *extra: str) -> str:
    result = invoke(
        runner,
        "create",
        cli_db.parent_task_id,
        "agent-1",
        "Book the venue",
        "--type",
        "reasoning",
        *extra,
    )
    assert result.exit_code == 0, result.output
    (task_id,) = cli_db.ai_task_ids()
    return task_id


class TestAITaskCLI:
    def test_create_and_show(self, cli_runner: CliRunner, cli_db: CliDatabase) -> None:
        task_id = create_ai_task(cli_runner, cli_db, "--tags", "travel, travel")

        shown = invoke(cli_runner, "show", task_id)

        assert shown.exit_code == 0
        assert "Book the venue" in text_of(shown)
        assert "Tags: travel" in text_of(shown)

    def test_list_empty(self, cli_runner: CliRunner, cli_db: CliDatabase) -> None:
        result = invoke(cli_runner, "list")

        assert result.exit_code == 0
        assert "No AI tasks found" in text_of(result)

    def test_create_validation_failure(self, cli_runner: CliRunner, cli_db: CliDatabase) -> None:
        result = invoke(
            cli_runner,
            "create",
            cli_db.parent_task_id,
            "agent-1",
            "Book the venue",
            "--type",
            "poem",
        )

        assert result.exit_code == 1
        assert "Task creation validation failed" in text_of(result)
        assert "Invalid task type" in text_of(result)
        assert cli_db.ai_task_ids() == []

    def test_status_retry_and_cancel(self, cli_runner: CliRunner, cli_db: CliDatabase) -> None:
        task_id = create_ai_task(cli_runner, cli_db)

        assert invoke(cli_runner, "status", task_id, "in_progress").exit_code == 0
        failed = invoke(cli_runner, "status", task_id, "failed", "--error", "venue closed")
        assert failed.exit_code == 0

        retried = invoke(cli_runner, "retry", task_id)
        assert retried.exit_code == 0
        assert "AI Task Retried" in text_of(retried)

        cancelled = invoke(cli_runner, "cancel", task_id, "--reason", "offsite moved")
        assert cancelled.exit_code == 0
        assert "offsite moved" in text_of(cancelled)

    def test_invalid_transition_exits_1(self, cli_runner: CliRunner, cli_db: CliDatabase) -> None:
        task_id = create_ai_task(cli_runner, cli_db)

        result = invoke(cli_runner, "status", task_id, "completed")

        assert result.exit_code == 1
        assert "Cannot transition from pending to completed" in text_of(result)

    def test_delete(self, cli_runner: CliRunner, cli_db: CliDatabase) -> None:
        task_id = create_ai_task(cli_runner, cli_db)

        result = invoke(cli_runner, "delete", task_id, "--yes")

        assert result.exit_code == 0
        assert cli_db.ai_task_ids() == []

    def test_estimate(self, cli_runner: CliRunner, cli_db: CliDatabase) -> None:
        result = invoke(cli_runner, "estimate", "gpt-4", "--max-tokens", "2000")

        assert result.exit_code == 0
        assert "$0.0600" in text_of(result)

    def test_requires_user(self, cli_runner: CliRunner, cli_db: CliDatabase) -> None:
        result = cli_runner.invoke(app, ["ai-task", "stats"])

        assert result.exit_code == 1
        assert "User context required" in text_of(result)

    def test_costs(self, cli_runner: CliRunner, cli_db: CliDatabase) -> None:
        create_ai_task(cli_runner, cli_db, "--model", "gpt-4", "--max-tokens", "1500")

        result = invoke(cli_runner, "costs")

        assert result.exit_code == 0, result.output
        assert "Estimated: $0.0500" in text_of(result)
        assert "Completed / pending / failed: 0 / 1 / 0" in text_of(result)
