"""Cost estimation and cost analytics for AI tasks."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, Field

from zmemory.config import DEFAULT_MODEL_COSTS
from zmemory.database.models.ai_task import AITaskStatus
from zmemory.schemas.ai_task import AITaskRecord

DEFAULT_COST_PER_1K = 0.01
DEFAULT_MAX_TOKENS = 1000


def estimate_cost(
    model: str | None,
    max_tokens: int | None = None,
    model_costs: Mapping[str, float] | None = None,
    default_cost_per_1k: float = DEFAULT_COST_PER_1K,
    default_max_tokens: int = DEFAULT_MAX_TOKENS,
) -> float:
    """Estimate the USD cost of running a task.

    Looks the model up in the per-1K-token table (unknown models use
    ``default_cost_per_1k``) and scales by ``max_tokens``.

    Args:
        model: Model name, e.g. ``"gpt-4"``.
        max_tokens: Token budget; ``default_max_tokens`` when not given.
        model_costs: Override for the cost table.
        default_cost_per_1k: Cost applied to models missing from the table.
        default_max_tokens: Token count assumed when ``max_tokens`` is falsy.

    Returns:
        Estimated cost rounded half up to 2 decimal places.
    """
    costs = DEFAULT_MODEL_COSTS if model_costs is None else model_costs
    per_1k = costs.get(model, default_cost_per_1k) if model else default_cost_per_1k
    tokens = max_tokens or default_max_tokens
    estimated = (tokens / 1000) * per_1k
    return math.floor(estimated * 100 + 0.5) / 100


class CostAnalysis(BaseModel):
    """Cost and completion summary over a set of AI tasks."""

    total_estimated_cost: float = 0.0
    total_actual_cost: float = 0.0
    completed_tasks: int = 0
    pending_tasks: int = 0
    failed_tasks: int = 0
    average_cost_per_task: float = 0.0
    cost_by_model: dict[str, float] = Field(default_factory=dict)
    cost_by_type: dict[str, float] = Field(default_factory=dict)


def resolve_model(task: AITaskRecord) -> str | None:
    """Model a task ran on, falling back to the configured model."""
    execution_model: Any = (task.execution_result or {}).get("model_used")
    return execution_model or task.metadata.model


def analyze_costs(tasks: Iterable[AITaskRecord]) -> CostAnalysis:
    """Aggregate estimated/actual cost, status counts and per-model/type cost.

    Per-model and per-type buckets sum actual cost. The average is actual
    cost over all tasks considered.
    """
    analysis = CostAnalysis()
    count = 0

    for task in tasks:
        count += 1
        estimated = task.estimated_cost_usd or 0.0
        actual = task.actual_cost_usd or 0.0

        analysis.total_estimated_cost += estimated
        analysis.total_actual_cost += actual

        if task.status == AITaskStatus.completed:
            analysis.completed_tasks += 1
        elif task.status == AITaskStatus.pending:
            analysis.pending_tasks += 1
        elif task.status == AITaskStatus.failed:
            analysis.failed_tasks += 1

        model = resolve_model(task)
        if model:
            analysis.cost_by_model[model] = analysis.cost_by_model.get(model, 0.0) + actual

        task_type = task.task_type.value
        analysis.cost_by_type[task_type] = analysis.cost_by_type.get(task_type, 0.0) + actual

    if count:
        analysis.average_cost_per_task = analysis.total_actual_cost / count

    return analysis
