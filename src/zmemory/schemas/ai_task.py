"""Pydantic schemas for AI task payloads.

This module is the validation layer in front of the AI task service:

- AITaskCreateRequest / AITaskUpdate: create and partial-update payloads
- AITaskMetadata / Guardrails: typed views over the JSON maps persisted in
  the ai_tasks table, with sanitization and a storage serialization layer
- AITaskExecutionResult / AITaskExecutionContext: execution reporting
- AITaskBatchRequest / AITaskBatchResult: batch operations
- AITaskFilterParams: list filters passed through to the repository
- AITaskRecord: the task returned to callers, including the enriched
  top-level ``priority`` and ``tags`` fields

Validation problems are reported with every violation at once; see
``describe_validation_errors``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from zmemory.database.models.ai_task import (
    AITaskMode,
    AITaskPriority,
    AITaskStatus,
    AITaskType,
)

ENUM_FIELD_MESSAGES: dict[str, str] = {
    "task_type": "Invalid task type",
    "priority": "Invalid priority level",
    "status": "Invalid task status",
    "mode": "Invalid execution mode",
}


def sanitize_string_list(value: Any) -> list[str]:
    """Trim entries, drop empty ones, and de-duplicate preserving order.

    Anything that is not a list or tuple becomes an empty list.
    """
    if not isinstance(value, (list, tuple)):
        return []

    cleaned: list[str] = []
    for item in value:
        if item is None:
            continue
        text = str(item).strip()
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned


def _strip_optional(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip()


def _format_bound(bound: Any) -> Any:
    # Float fields may report integral bounds as 2.0
    if isinstance(bound, float) and bound.is_integer():
        return int(bound)
    return bound


def describe_validation_errors(exc: ValidationError) -> list[str]:
    """Turn a pydantic ValidationError into human-readable messages.

    Enum fields get fixed messages, numeric bounds read as
    ``"<field> must be at least <min>"`` / ``"<field> cannot exceed <max>"``.

    Args:
        exc: The pydantic validation error.

    Returns:
        One message per distinct violation, in the order pydantic reported them.
    """
    messages: list[str] = []
    for error in exc.errors():
        loc = error.get("loc") or ()
        field = str(loc[0]) if loc else ""
        ctx = error.get("ctx") or {}
        error_type = error.get("type", "")

        if field in ENUM_FIELD_MESSAGES and len(loc) == 1:
            message = ENUM_FIELD_MESSAGES[field]
        elif error_type in ("greater_than_equal", "greater_than"):
            bound = ctx.get("ge", ctx.get("gt"))
            message = f"{field} must be at least {_format_bound(bound)}"
        elif error_type in ("less_than_equal", "less_than"):
            bound = ctx.get("le", ctx.get("lt"))
            message = f"{field} cannot exceed {_format_bound(bound)}"
        else:
            path = ".".join(str(part) for part in loc)
            message = f"{path}: {error.get('msg', 'invalid value')}" if path else error.get(
                "msg", "invalid value"
            )

        if message not in messages:
            messages.append(message)
    return messages


# --- Stored JSON maps ---


class Guardrails(BaseModel):
    """Execution limits attached to an AI task.

    Stored with the camelCase keys the rest of the application uses.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    cost_cap_usd: float | None = Field(default=None, alias="costCapUSD")
    time_cap_min: float | None = Field(default=None, alias="timeCapMin")
    requires_human_approval: bool = Field(default=True, alias="requiresHumanApproval")
    data_scopes: list[str] = Field(default_factory=list, alias="dataScopes")

    @field_validator("data_scopes", mode="before")
    @classmethod
    def _clean_scopes(cls, v: Any) -> list[str]:
        return sanitize_string_list(v)

    @field_validator("requires_human_approval", mode="before")
    @classmethod
    def _default_approval(cls, v: Any) -> Any:
        return True if v is None else v

    @classmethod
    def merged(cls, *layers: Mapping[str, Any] | None) -> Guardrails:
        """Build guardrails from defaults overlaid by each mapping in turn."""
        data: dict[str, Any] = {}
        for layer in layers:
            if layer:
                data.update(cls.model_validate(dict(layer)).to_storage(include_unset=False))
        return cls.model_validate(data)

    def to_storage(self, include_unset: bool = True) -> dict[str, Any]:
        """Serialize to the persisted camelCase map."""
        return self.model_dump(by_alias=True, mode="json", exclude_unset=not include_unset)


class AITaskMetadata(BaseModel):
    """Typed view of the AI task metadata bag.

    Unknown keys are preserved so callers can keep attaching their own data.
    ``tags`` is always a sanitized list and the retry counters are always set.
    """

    model_config = ConfigDict(extra="allow", protected_namespaces=())

    priority: str | None = None
    tags: list[str] = Field(default_factory=list)
    model: str | None = None
    provider: str | None = None
    prompt: str | None = None
    system_prompt: str | None = None
    category: str | None = None
    input_data: dict[str, Any] | None = None
    expected_output_format: str | None = None
    retry_count: int = 0
    max_retries: int = 3
    cancellation_reason: str | None = None
    cancelled_at: str | None = None
    last_model_used: str | None = None
    last_provider_used: str | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, v: Any) -> list[str]:
        return sanitize_string_list(v)

    @field_validator("model", "provider", "category", mode="before")
    @classmethod
    def _trim(cls, v: Any) -> str | None:
        return _strip_optional(v)

    @field_validator("prompt", "system_prompt", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> str | None:
        return None if v is None else str(v)

    @field_validator("retry_count", mode="before")
    @classmethod
    def _default_retry_count(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("max_retries", mode="before")
    @classmethod
    def _default_max_retries(cls, v: Any) -> Any:
        return 3 if v is None else v

    @classmethod
    def from_storage(cls, data: Mapping[str, Any] | None) -> AITaskMetadata:
        """Parse the persisted metadata map."""
        return cls.model_validate(dict(data or {}))

    def to_storage(self) -> dict[str, Any]:
        """Serialize to the persisted metadata map."""
        return self.model_dump(mode="json", exclude_none=True)


# --- Requests ---


class AITaskCreateRequest(BaseModel):
    """Payload for creating an AI task.

    ``title`` and ``description`` are accepted as fallbacks for
    ``objective`` and ``deliverables``/``context``; ``deadline`` for
    ``due_at``; ``estimated_cost`` for ``estimated_cost_usd``.
    """

    model_config = ConfigDict(extra="allow", protected_namespaces=())

    task_id: str | None = None
    agent_id: str | None = None
    objective: str | None = None
    title: str | None = None
    description: str | None = None
    deliverables: str | None = None
    context: str | None = None
    acceptance_criteria: str | None = None
    task_type: AITaskType | None = None
    priority: AITaskPriority | None = None
    status: AITaskStatus | None = None
    mode: AITaskMode | None = None
    dependencies: list[str] | None = None
    guardrails: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None

    model: str | None = None
    provider: str | None = None
    prompt: str | None = None
    system_prompt: str | None = None
    max_tokens: int | None = Field(default=None, ge=1, le=100000)
    temperature: float | None = Field(default=None, ge=0, le=2)
    top_p: float | None = Field(default=None, ge=0, le=1)

    input_data: dict[str, Any] | None = None
    expected_output_format: str | None = None

    deadline: datetime | None = None
    due_at: datetime | None = None
    retry_count: int | None = Field(default=None, ge=0)
    max_retries: int | None = Field(default=None, ge=0)

    tags: list[str] | None = None
    category: str | None = None

    estimated_cost: float | None = Field(default=None, gt=0)
    estimated_cost_usd: float | None = Field(default=None, gt=0)
    estimated_duration_seconds: int | None = Field(default=None, gt=0)
    estimated_duration_min: int | None = Field(default=None, gt=0)

    is_local_task: bool | None = None
    executor_workspace_id: str | None = None


class AITaskUpdate(BaseModel):
    """Partial update payload for an AI task.

    Only fields present in the payload are applied; use ``model_fields_set``
    to tell an omitted field from an explicit ``None``.
    """

    model_config = ConfigDict(extra="allow")

    objective: str | None = None
    deliverables: str | None = None
    context: str | None = None
    acceptance_criteria: str | None = None
    task_type: AITaskType | None = None
    mode: AITaskMode | None = None
    status: AITaskStatus | None = None
    priority: AITaskPriority | None = None
    tags: list[str] | None = None
    due_at: datetime | None = None
    deadline: datetime | None = None
    dependencies: list[str] | None = None
    guardrails: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    estimated_cost: float | None = Field(default=None, ge=0)
    estimated_cost_usd: float | None = Field(default=None, ge=0)
    actual_cost: float | None = Field(default=None, ge=0)
    actual_cost_usd: float | None = Field(default=None, ge=0)
    estimated_duration_seconds: int | None = Field(default=None, ge=0)
    estimated_duration_min: int | None = Field(default=None, ge=0)
    execution_result: dict[str, Any] | None = None
    history: list[Any] | None = None
    is_local_task: bool | None = None
    executor_workspace_id: str | None = None


class AITaskExecutionResult(BaseModel):
    """Outcome reported by whatever executed an AI task."""

    model_config = ConfigDict(extra="allow", protected_namespaces=())

    success: bool | None = None
    output_data: dict[str, Any] | None = None
    error_message: str | None = None
    tokens_used: int | None = Field(default=None, ge=0)
    actual_cost: float | None = Field(default=None, ge=0)
    execution_time_seconds: float | None = Field(default=None, ge=0)
    model_used: str | None = None
    provider_used: str | None = None

    def to_result_data(self) -> dict[str, Any]:
        """Fields forwarded to the repository alongside a status change."""
        return self.model_dump(
            include={
                "output_data",
                "error_message",
                "tokens_used",
                "actual_cost",
                "execution_time_seconds",
                "model_used",
                "provider_used",
            },
            exclude_none=True,
            mode="json",
        )


class CostConstraints(BaseModel):
    """Spending limits applied when validating execution."""

    max_cost_per_task: float | None = Field(default=None, ge=0)
    max_total_cost: float | None = Field(default=None, ge=0)


class AITaskExecutionContext(BaseModel):
    """Options supplied when validating or executing tasks."""

    model_config = ConfigDict(extra="allow")

    cost_constraints: CostConstraints | None = None
    dry_run: bool = False
    fail_fast: bool = False


class BatchExecutionOptions(BaseModel):
    """Options for batch creation."""

    model_config = ConfigDict(extra="allow")

    fail_fast: bool = False


class AITaskBatchRequest(BaseModel):
    """A batch of create requests.

    Items are kept as raw payloads so each one is validated individually
    and a bad item fails on its own rather than rejecting the batch.
    """

    tasks: list[dict[str, Any]]
    execution_options: BatchExecutionOptions | None = None


class AITaskBatchItemResult(BaseModel):
    """Per-item success record in a batch result."""

    task_id: str
    success: bool = True


class AITaskBatchError(BaseModel):
    """Per-item failure record in a batch result."""

    task_index: int
    error: str


class AITaskBatchResult(BaseModel):
    """Aggregate outcome of a batch operation.

    A batch can partially succeed; ``errors`` is the only signal of that.
    """

    total_tasks: int
    successful_tasks: int
    failed_tasks: int
    total_cost: float = 0.0
    total_execution_time: float = 0.0
    results: list[AITaskBatchItemResult] = Field(default_factory=list)
    errors: list[AITaskBatchError] = Field(default_factory=list)


class AITaskFilterParams(BaseModel):
    """Filters for listing AI tasks. Unknown keys are passed through."""

    model_config = ConfigDict(extra="allow")

    task_type: AITaskType | None = None
    status: AITaskStatus | None = None
    priority: AITaskPriority | None = None
    mode: AITaskMode | None = None
    agent_id: str | None = None
    task_id: str | None = None
    parent_task_id: str | None = None
    is_local_task: bool | None = None
    executor_workspace_id: str | None = None
    due_from: datetime | None = None
    due_to: datetime | None = None
    deadline_after: datetime | None = None
    deadline_before: datetime | None = None
    min_cost: float | None = Field(default=None, ge=0)
    max_cost: float | None = Field(default=None, ge=0)
    tags: list[str] | None = None
    search: str | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None
    updated_after: datetime | None = None
    updated_before: datetime | None = None
    sort_by: str = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
    limit: int = Field(default=50, ge=1, le=500)
    offset: int = Field(default=0, ge=0)

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, v: Any) -> list[str] | None:
        if v is None:
            return None
        if isinstance(v, str):
            v = v.split(",")
        cleaned = sanitize_string_list(v)
        return cleaned or None


# --- Responses ---


class AITaskRecord(BaseModel):
    """An AI task as returned by the service.

    ``priority`` and ``tags`` are convenience copies of the metadata
    values, filled in by ``enrich``.
    """

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    user_id: str | None = None
    task_id: str | None = None
    agent_id: str
    objective: str
    deliverables: str | None = None
    context: str | None = None
    acceptance_criteria: str | None = None
    task_type: AITaskType
    mode: AITaskMode = AITaskMode.plan_only
    status: AITaskStatus = AITaskStatus.pending
    dependencies: list[str] = Field(default_factory=list)
    guardrails: Guardrails = Field(default_factory=Guardrails)
    metadata: AITaskMetadata = Field(
        default_factory=AITaskMetadata,
        validation_alias=AliasChoices("metadata_", "metadata"),
    )
    estimated_cost_usd: float | None = None
    actual_cost_usd: float | None = None
    estimated_duration_min: int | None = None
    actual_duration_min: int | None = None
    execution_result: dict[str, Any] | None = None
    history: list[Any] | None = None
    is_local_task: bool = False
    executor_workspace_id: str | None = None
    due_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    priority: str | None = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("guardrails", "metadata", mode="before")
    @classmethod
    def _empty_map(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("dependencies", mode="before")
    @classmethod
    def _clean_dependencies(cls, v: Any) -> list[str]:
        return sanitize_string_list(v)

    def enrich(self) -> AITaskRecord:
        """Return a copy with ``priority``/``tags`` lifted out of metadata."""
        return self.model_copy(
            update={
                "priority": self.metadata.priority,
                "tags": list(self.metadata.tags),
            }
        )


def records_from(rows: Iterable[Any]) -> list[AITaskRecord]:
    """Validate ORM rows or mappings into AITaskRecord instances."""
    return [AITaskRecord.model_validate(row) for row in rows]
