"""AI task lifecycle service.

Owns the rules for AI tasks delegated from regular tasks: creation with
validation and defaulting, the status state machine, retry and
cancellation, batch operations, and cost estimation and analytics.

Every public method returns a ``ServiceResult``. Failures are reported as
``ValidationError`` (bad input), ``BusinessRuleError`` (not allowed in the
current state), ``NotFoundError`` or ``RepositoryError``.

Retry and cancel read the task and then write it back without a version
check, so two concurrent callers can both pass the checks.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from zmemory.config import AITaskConfig
from zmemory.database.models.ai_task import AITaskPriority, AITaskStatus
from zmemory.database.repositories.protocols import AITaskRepository, TaskRepository
from zmemory.schemas.ai_task import (
    AITaskBatchError,
    AITaskBatchItemResult,
    AITaskBatchRequest,
    AITaskBatchResult,
    AITaskCreateRequest,
    AITaskExecutionContext,
    AITaskExecutionResult,
    AITaskFilterParams,
    AITaskMetadata,
    AITaskRecord,
    AITaskUpdate,
    Guardrails,
    describe_validation_errors,
    sanitize_string_list,
)
from zmemory.services.base import BaseService, ServiceContext
from zmemory.services.cost import CostAnalysis, analyze_costs, estimate_cost
from zmemory.services.errors import (
    BusinessRuleError,
    NotFoundError,
    RepositoryError,
    ServiceError,
    ValidationError,
)
from zmemory.services.results import RepositoryResult, ServiceResult
from zmemory.services.state_machine import ensure_transition

M = TypeVar("M", bound=BaseModel)

# Page size used when an operation needs every matching task
_SCAN_PAGE_SIZE = 500

_METADATA_PASSTHROUGH = (
    "model",
    "provider",
    "prompt",
    "system_prompt",
    "category",
    "input_data",
    "expected_output_format",
)


@dataclass
class AITaskServiceDependencies:
    """Repositories the AI task service talks to."""

    ai_task_repository: AITaskRepository
    task_repository: TaskRepository


def _seconds_to_minutes(seconds: float) -> int:
    return int(math.floor(seconds / 60 + 0.5))


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _raw_payload(payload: BaseModel | Mapping[str, Any] | None) -> dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, BaseModel):
        return payload.model_dump(exclude_unset=True)
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be an object")
    return dict(payload)


def _parse(model_cls: type[M], payload: Any, message: str) -> M:
    """Validate ``payload`` into ``model_cls`` or raise an aggregated ValidationError."""
    if isinstance(payload, model_cls):
        return payload
    try:
        return model_cls.model_validate(_raw_payload(payload))
    except PydanticValidationError as exc:
        raise ValidationError(message, {"errors": describe_validation_errors(exc)}) from exc


def _describe_failure(error: ServiceError) -> str:
    if isinstance(error, ValidationError) and error.details:
        return f"{error.message}: {'; '.join(error.errors)}"
    return error.message


class AITaskService(BaseService):
    """Lifecycle operations on a user's AI tasks.

    Args:
        context: Caller identity; every repository call is scoped to
            ``context.user_id``.
        dependencies: AI task and regular task repositories.
        config: AI task settings (retry defaults, batch limits, cost table).
    """

    service_name = "ai_task"

    def __init__(
        self,
        context: ServiceContext,
        dependencies: AITaskServiceDependencies,
        config: AITaskConfig | None = None,
    ):
        super().__init__(context)
        self.dependencies = dependencies
        self.config = config or AITaskConfig()

    @property
    def ai_tasks(self) -> AITaskRepository:
        return self.dependencies.ai_task_repository

    # --- Queries ---

    async def find_ai_tasks(
        self, filters: AITaskFilterParams | Mapping[str, Any] | None = None
    ) -> ServiceResult[list[AITaskRecord]]:
        """List the caller's AI tasks with enriched ``priority``/``tags``.

        Args:
            filters: Filter, sort and pagination parameters.

        Returns:
            ServiceResult with the page of tasks and the total match count.
        """
        outcome = await self.safe_operation(
            lambda: self._find(filters), "Failed to fetch AI tasks"
        )
        if outcome.error is not None:
            return ServiceResult.failure(outcome.error, total=0)
        records, total = outcome.data  # type: ignore[misc]
        return ServiceResult.success(records, total=total)

    async def find_ai_task_by_id(self, task_id: str) -> ServiceResult[AITaskRecord]:
        """Fetch one AI task, or fail with NOT_FOUND."""

        async def op() -> AITaskRecord:
            self.validate_user_access()
            self.validate_required(task_id, "task_id")
            return (await self._load_task(task_id)).enrich()

        return await self.safe_operation(op, "Failed to fetch AI task")

    async def get_tasks_by_agent(self, agent_id: str) -> ServiceResult[list[AITaskRecord]]:
        """List tasks assigned to an agent."""
        if not agent_id or not str(agent_id).strip():
            return ServiceResult.failure(ValidationError("agent_id is required"), total=0)
        return await self.find_ai_tasks({"agent_id": agent_id})

    async def get_tasks_by_parent(self, parent_task_id: str) -> ServiceResult[list[AITaskRecord]]:
        """List tasks whose dependencies include ``parent_task_id``."""
        if not parent_task_id or not str(parent_task_id).strip():
            return ServiceResult.failure(ValidationError("parent_task_id is required"), total=0)
        return await self.find_ai_tasks(
            {"parent_task_id": parent_task_id, "limit": _SCAN_PAGE_SIZE}
        )

    async def get_task_statistics(self) -> ServiceResult[dict[str, Any]]:
        """Status, type and cost aggregates across the caller's tasks."""

        async def op() -> dict[str, Any]:
            self.validate_user_access()
            result = await self.ai_tasks.get_task_statistics(self.user_id)
            return self._unwrap(result)

        return await self.safe_operation(op, "Failed to fetch AI task statistics")

    async def get_cost_analysis(
        self, filters: AITaskFilterParams | Mapping[str, Any] | None = None
    ) -> ServiceResult[CostAnalysis]:
        """Cost and completion summary over every task matching ``filters``."""

        async def op() -> CostAnalysis:
            self.validate_user_access()
            tasks = await self._find_all(filters)
            analysis = analyze_costs(tasks)
            self.log_operation(
                "info",
                "cost_analysis",
                tasks=len(tasks),
                total_actual_cost=analysis.total_actual_cost,
            )
            return analysis

        return await self.safe_operation(op, "Failed to analyze AI task costs")

    # --- Create / update / delete ---

    async def create_ai_task(
        self, request: AITaskCreateRequest | Mapping[str, Any]
    ) -> ServiceResult[AITaskRecord]:
        """Validate, default and persist a new AI task.

        Required fields are checked first and fail on their own. Everything
        else (enum values, numeric ranges, the related task lookup) is
        collected and reported together as "Task creation validation failed".

        Args:
            request: Create payload.

        Returns:
            ServiceResult with the created, enriched task.
        """

        async def op() -> AITaskRecord:
            self.validate_user_access()
            parsed, objective = await self._validate_create_request(request)
            payload = self._build_create_payload(parsed, objective)

            created = self._unwrap(await self.ai_tasks.create_ai_task(self.user_id, payload))
            self.log_operation(
                "info",
                "created",
                ai_task_id=created.id,
                task_id=created.task_id,
                agent_id=created.agent_id,
                task_type=created.task_type.value,
                estimated_cost_usd=created.estimated_cost_usd,
            )
            return created.enrich()

        return await self.safe_operation(op, "Failed to create AI task")

    async def update_ai_task(
        self, task_id: str, updates: AITaskUpdate | Mapping[str, Any]
    ) -> ServiceResult[AITaskRecord]:
        """Apply a partial update, enforcing the status transition table."""

        async def op() -> AITaskRecord:
            self.validate_user_access()
            self.validate_required(task_id, "task_id")
            parsed = _parse(AITaskUpdate, updates, "Task update validation failed")
            current = await self._load_task(task_id)
            return await self._apply_update(current, parsed, check_transition=True)

        return await self.safe_operation(op, "Failed to update AI task")

    async def delete_ai_task(self, task_id: str) -> ServiceResult[bool]:
        """Delete a task unless it is currently executing."""

        async def op() -> bool:
            self.validate_user_access()
            self.validate_required(task_id, "task_id")
            current = await self._load_task(task_id)
            self.validate_business_rule(
                current.status != AITaskStatus.in_progress,
                "Cannot delete task that is currently executing",
            )
            deleted = self._unwrap(
                await self.ai_tasks.delete_by_user_and_id(self.user_id, task_id)
            )
            self.log_operation("info", "deleted", ai_task_id=task_id, deleted=deleted)
            return True

        return await self.safe_operation(op, "Failed to delete AI task")

    # --- Lifecycle ---

    async def update_task_status(
        self,
        task_id: str,
        status: AITaskStatus | str,
        result: AITaskExecutionResult | Mapping[str, Any] | None = None,
    ) -> ServiceResult[AITaskRecord]:
        """Move a task to ``status``, optionally recording an execution result.

        Args:
            task_id: ID of the AI task.
            status: Requested status; must be reachable from the current one.
            result: Execution outcome to merge into the stored result.

        Returns:
            ServiceResult with the updated task.
        """

        async def op() -> AITaskRecord:
            self.validate_user_access()
            self.validate_required(task_id, "task_id")
            try:
                target = AITaskStatus(status)
            except ValueError as exc:
                raise ValidationError("Invalid task status") from exc

            execution_result = (
                _parse(AITaskExecutionResult, result, "Invalid execution result")
                if result is not None
                else None
            )

            current = await self._load_task(task_id)
            ensure_transition(current.status, target, task_id)

            result_data = execution_result.to_result_data() if execution_result else None
            updated = self._unwrap(
                await self.ai_tasks.update_task_status(
                    self.user_id, task_id, target.value, result_data
                )
            )
            self.log_operation(
                "info",
                "status_updated",
                ai_task_id=task_id,
                old_status=current.status.value,
                new_status=target.value,
                has_result=bool(result_data),
            )
            return updated.enrich()

        return await self.safe_operation(op, "Failed to update AI task status")

    async def schedule_task(
        self, task_id: str, scheduled_for: datetime | str
    ) -> ServiceResult[AITaskRecord]:
        """Set the task's due time."""
        return await self.update_ai_task(task_id, {"due_at": scheduled_for})

    async def retry_failed_task(self, task_id: str) -> ServiceResult[AITaskRecord]:
        """Return a failed task to pending while retries remain.

        The stored execution result is cleared; the retry counter is kept.
        """

        async def op() -> AITaskRecord:
            self.validate_user_access()
            self.validate_required(task_id, "task_id")
            current = await self._load_task(task_id)

            self.validate_business_rule(
                current.status == AITaskStatus.failed, "Can only retry failed tasks"
            )
            retry_count = current.metadata.retry_count
            max_retries = current.metadata.max_retries
            self.validate_business_rule(
                retry_count < max_retries,
                "Maximum retry attempts reached",
                {"retry_count": retry_count, "max_retries": max_retries},
            )

            updates = AITaskUpdate(
                status=AITaskStatus.pending,
                metadata={"retry_count": retry_count},
                execution_result=None,
            )
            updated = await self._apply_update(current, updates, check_transition=True)
            self.log_operation(
                "info",
                "retried",
                ai_task_id=task_id,
                retry_count=retry_count,
                max_retries=max_retries,
            )
            return updated

        return await self.safe_operation(op, "Failed to retry AI task")

    async def cancel_task(
        self, task_id: str, reason: str | None = None
    ) -> ServiceResult[AITaskRecord]:
        """Cancel any task that is not completed.

        When ``reason`` is given it is recorded in metadata together with
        the cancellation time.
        """

        async def op() -> AITaskRecord:
            self.validate_user_access()
            self.validate_required(task_id, "task_id")
            current = await self._load_task(task_id)
            self.validate_business_rule(
                current.status != AITaskStatus.completed, "Cannot cancel completed task"
            )

            fields: dict[str, Any] = {"status": AITaskStatus.cancelled}
            if reason:
                fields["metadata"] = {
                    "cancellation_reason": reason,
                    "cancelled_at": self.utcnow().isoformat(),
                }
            updated = await self._apply_update(
                current, AITaskUpdate(**fields), check_transition=False
            )
            self.log_operation(
                "info",
                "cancelled",
                ai_task_id=task_id,
                previous_status=current.status.value,
                reason=reason,
            )
            return updated

        return await self.safe_operation(op, "Failed to cancel AI task")

    # --- Batches ---

    async def create_batch_tasks(
        self, request: AITaskBatchRequest | Mapping[str, Any]
    ) -> ServiceResult[AITaskBatchResult]:
        """Create tasks one by one, collecting per-item failures.

        With ``execution_options.fail_fast`` the batch stops at the first
        failing item; later items are not attempted.
        """

        async def op() -> AITaskBatchResult:
            self.validate_user_access()
            batch = _parse(AITaskBatchRequest, request, "Batch request validation failed")
            self.validate_array_length(batch.tasks, "tasks", 1, self.config.max_batch_create)
            fail_fast = bool(batch.execution_options and batch.execution_options.fail_fast)

            results: list[AITaskBatchItemResult] = []
            errors: list[AITaskBatchError] = []
            total_cost = 0.0

            for index, item in enumerate(batch.tasks):
                created = await self.create_ai_task(item)
                if created.error is not None:
                    errors.append(
                        AITaskBatchError(task_index=index, error=_describe_failure(created.error))
                    )
                    if fail_fast:
                        break
                    continue

                record = created.unwrap()
                results.append(AITaskBatchItemResult(task_id=record.id))
                total_cost += record.estimated_cost_usd or 0.0

            summary = AITaskBatchResult(
                total_tasks=len(batch.tasks),
                successful_tasks=len(results),
                failed_tasks=len(errors),
                total_cost=total_cost,
                results=results,
                errors=errors,
            )
            self.log_operation(
                "info",
                "batch_created",
                total_tasks=summary.total_tasks,
                successful_tasks=summary.successful_tasks,
                failed_tasks=summary.failed_tasks,
            )
            return summary

        return await self.safe_operation(op, "Failed to create AI task batch")

    async def execute_batch(
        self,
        task_ids: Sequence[str],
        context: AITaskExecutionContext | Mapping[str, Any] | None = None,
    ) -> ServiceResult[AITaskBatchResult]:
        """Mark each task in_progress.

        This only flips status; running the tasks is the executor's job.
        ``total_cost`` and ``total_execution_time`` are therefore always 0.
        """

        async def op() -> AITaskBatchResult:
            self.validate_user_access()
            ids = list(task_ids) if isinstance(task_ids, (list, tuple)) else []
            self.validate_array_length(ids, "task_ids", 1, self.config.max_batch_execute)
            execution_context = _parse(
                AITaskExecutionContext, context, "Execution context validation failed"
            )

            results: list[AITaskBatchItemResult] = []
            errors: list[AITaskBatchError] = []

            for index, task_id in enumerate(ids):
                started = await self.update_task_status(task_id, AITaskStatus.in_progress)
                if started.error is not None:
                    errors.append(
                        AITaskBatchError(task_index=index, error=_describe_failure(started.error))
                    )
                    if execution_context.fail_fast:
                        break
                    continue
                results.append(AITaskBatchItemResult(task_id=task_id))

            summary = AITaskBatchResult(
                total_tasks=len(ids),
                successful_tasks=len(results),
                failed_tasks=len(errors),
                results=results,
                errors=errors,
            )
            self.log_operation(
                "info",
                "batch_executed",
                total_tasks=summary.total_tasks,
                successful_tasks=summary.successful_tasks,
                failed_tasks=summary.failed_tasks,
            )
            return summary

        return await self.safe_operation(op, "Failed to execute AI task batch")

    # --- Checks and estimates ---

    async def validate_task_execution(
        self,
        task: AITaskRecord | Mapping[str, Any],
        context: AITaskExecutionContext | Mapping[str, Any] | None = None,
    ) -> ServiceResult[bool]:
        """Check that a task may be executed now.

        All failing checks are reported together as "Task validation failed".
        """

        async def op() -> bool:
            record = _parse(AITaskRecord, task, "Invalid task")
            execution_context = _parse(
                AITaskExecutionContext, context, "Execution context validation failed"
            )
            errors: list[str] = []

            constraints = execution_context.cost_constraints
            if constraints is not None and constraints.max_cost_per_task:
                if (record.estimated_cost_usd or 0.0) > constraints.max_cost_per_task:
                    errors.append("Task estimated cost exceeds per-task limit")

            if record.status != AITaskStatus.pending:
                errors.append("Task must be in pending status to execute")

            if record.due_at is not None and _as_utc(record.due_at) < self.utcnow():
                errors.append("Task deadline has passed")

            if record.metadata.retry_count >= record.metadata.max_retries:
                errors.append("Task has exceeded maximum retry attempts")

            if errors:
                raise ValidationError("Task validation failed", {"errors": errors})
            return True

        return await self.safe_operation(op, "Failed to validate AI task execution")

    async def estimate_task_cost(
        self, request: AITaskCreateRequest | Mapping[str, Any]
    ) -> ServiceResult[float]:
        """Estimate the USD cost of a task from its model and token budget."""

        async def op() -> float:
            parsed = _parse(AITaskCreateRequest, request, "Cost estimate validation failed")
            return self._estimate(parsed.model, parsed.max_tokens)

        return await self.safe_operation(op, "Failed to estimate AI task cost")

    # --- Internals ---

    def _unwrap(self, result: RepositoryResult[Any]) -> Any:
        if result.error is not None:
            if isinstance(result.error, ServiceError):
                raise result.error
            raise RepositoryError(str(result.error))
        return result.data

    def _estimate(self, model: str | None, max_tokens: int | None) -> float:
        return estimate_cost(
            model,
            max_tokens,
            model_costs=self.config.model_costs,
            default_cost_per_1k=self.config.default_model_cost_per_1k,
            default_max_tokens=self.config.default_max_tokens,
        )

    async def _load_task(self, task_id: str) -> AITaskRecord:
        record = self._unwrap(await self.ai_tasks.find_by_user_and_id(self.user_id, task_id))
        if record is None:
            raise NotFoundError("AI Task", task_id)
        return record

    async def _find(
        self, filters: AITaskFilterParams | Mapping[str, Any] | None
    ) -> tuple[list[AITaskRecord], int]:
        self.validate_user_access()
        params = _parse(AITaskFilterParams, filters, "Invalid filters")
        result = await self.ai_tasks.find_ai_tasks_advanced(self.user_id, params)
        records = self._unwrap(result) or []
        total = result.total if result.total is not None else len(records)
        self.log_operation("debug", "listed", count=len(records), total=total)
        return [record.enrich() for record in records], total

    async def _find_all(
        self, filters: AITaskFilterParams | Mapping[str, Any] | None
    ) -> list[AITaskRecord]:
        params = _parse(AITaskFilterParams, filters, "Invalid filters")
        collected: list[AITaskRecord] = []
        offset = 0
        while True:
            page = params.model_copy(update={"limit": _SCAN_PAGE_SIZE, "offset": offset})
            records, total = await self._find(page)
            collected.extend(records)
            offset += _SCAN_PAGE_SIZE
            if not records or offset >= total:
                return collected

    async def _validate_create_request(
        self, request: AITaskCreateRequest | Mapping[str, Any]
    ) -> tuple[AITaskCreateRequest, str]:
        raw = _raw_payload(request)

        self.validate_required(raw.get("task_id"), "task_id")
        self.validate_required(raw.get("agent_id"), "agent_id")
        objective = str(raw.get("objective") or raw.get("title") or "").strip()
        self.validate_required(objective, "objective")
        self.validate_required(raw.get("task_type"), "task_type")

        errors: list[str] = []
        parsed: AITaskCreateRequest | None = None
        try:
            parsed = AITaskCreateRequest.model_validate(raw)
        except PydanticValidationError as exc:
            errors.extend(describe_validation_errors(exc))

        related_task = self._unwrap(
            await self.dependencies.task_repository.find_by_user_and_id(
                self.user_id, str(raw["task_id"])
            )
        )
        if related_task is None:
            errors.append("Related task not found")

        if errors or parsed is None:
            raise ValidationError("Task creation validation failed", {"errors": errors})
        return parsed, objective

    def _build_create_payload(self, request: AITaskCreateRequest, objective: str) -> dict[str, Any]:
        base_metadata = dict(request.metadata or {})

        priority: str = AITaskPriority.medium.value
        if request.priority is not None:
            priority = request.priority.value
        elif base_metadata.get("priority") in {p.value for p in AITaskPriority}:
            priority = base_metadata["priority"]

        metadata: dict[str, Any] = {
            **base_metadata,
            "priority": priority,
            "tags": request.tags if request.tags is not None else base_metadata.get("tags"),
        }
        for key in _METADATA_PASSTHROUGH:
            value = getattr(request, key)
            if value:
                metadata[key] = value
        if request.retry_count is not None:
            metadata["retry_count"] = request.retry_count
        if request.max_retries is not None:
            metadata["max_retries"] = request.max_retries
        elif metadata.get("max_retries") is None:
            metadata["max_retries"] = self.config.default_max_retries

        try:
            stored_metadata = AITaskMetadata.from_storage(metadata).to_storage()
            guardrails = Guardrails.merged(request.guardrails).to_storage()
        except PydanticValidationError as exc:
            raise ValidationError(
                "Task creation validation failed",
                {"errors": describe_validation_errors(exc)},
            ) from exc

        estimated_cost = request.estimated_cost or request.estimated_cost_usd
        if estimated_cost is None and request.model:
            estimated_cost = self._estimate(request.model, request.max_tokens)

        estimated_duration = request.estimated_duration_min
        if estimated_duration is None and request.estimated_duration_seconds:
            estimated_duration = _seconds_to_minutes(request.estimated_duration_seconds)

        description = request.description
        payload: dict[str, Any] = {
            "task_id": request.task_id,
            "agent_id": request.agent_id,
            "objective": objective,
            "deliverables": (
                request.deliverables if request.deliverables is not None else description
            ),
            "context": request.context if request.context is not None else description,
            "acceptance_criteria": request.acceptance_criteria,
            "task_type": request.task_type.value if request.task_type else None,
            "mode": request.mode.value if request.mode else None,
            "status": request.status.value if request.status else AITaskStatus.pending.value,
            "dependencies": sanitize_string_list(request.dependencies or []),
            "guardrails": guardrails,
            "metadata": stored_metadata,
            "estimated_cost_usd": estimated_cost,
            "estimated_duration_min": estimated_duration,
            "due_at": request.deadline or request.due_at,
            "is_local_task": request.is_local_task,
            "executor_workspace_id": request.executor_workspace_id,
        }
        return {key: value for key, value in payload.items() if value is not None}

    def _build_update_payload(
        self, updates: AITaskUpdate, current: AITaskRecord
    ) -> dict[str, Any]:
        fields = updates.model_fields_set
        payload: dict[str, Any] = {}

        if "objective" in fields and updates.objective is not None:
            objective = updates.objective.strip()
            self.validate_required(objective, "objective")
            payload["objective"] = objective

        for key in (
            "deliverables",
            "context",
            "acceptance_criteria",
            "execution_result",
            "history",
            "executor_workspace_id",
        ):
            if key in fields:
                payload[key] = getattr(updates, key)

        for key in ("task_type", "mode", "status"):
            value = getattr(updates, key)
            if key in fields and value is not None:
                payload[key] = value.value

        if "is_local_task" in fields and updates.is_local_task is not None:
            payload["is_local_task"] = updates.is_local_task

        if "due_at" in fields:
            payload["due_at"] = updates.due_at
        if "deadline" in fields:
            payload["due_at"] = updates.deadline

        if "dependencies" in fields:
            payload["dependencies"] = sanitize_string_list(updates.dependencies or [])

        if "guardrails" in fields:
            payload["guardrails"] = Guardrails.merged(
                current.guardrails.to_storage(), updates.guardrails
            ).to_storage()

        metadata = current.metadata.to_storage()
        metadata_changed = False
        if "metadata" in fields and updates.metadata:
            metadata.update(updates.metadata)
            metadata_changed = True
        if "priority" in fields and updates.priority is not None:
            metadata["priority"] = updates.priority.value
            metadata_changed = True
        if "tags" in fields:
            metadata["tags"] = updates.tags or []
            metadata_changed = True
        if metadata_changed:
            try:
                payload["metadata"] = AITaskMetadata.from_storage(metadata).to_storage()
            except PydanticValidationError as exc:
                raise ValidationError(
                    "Task update validation failed",
                    {"errors": describe_validation_errors(exc)},
                ) from exc

        if "estimated_cost_usd" in fields:
            payload["estimated_cost_usd"] = updates.estimated_cost_usd
        if "estimated_cost" in fields:
            payload["estimated_cost_usd"] = updates.estimated_cost
        if "actual_cost_usd" in fields:
            payload["actual_cost_usd"] = updates.actual_cost_usd
        if "actual_cost" in fields:
            payload["actual_cost_usd"] = updates.actual_cost

        if "estimated_duration_min" in fields:
            payload["estimated_duration_min"] = updates.estimated_duration_min
        if "estimated_duration_seconds" in fields:
            seconds = updates.estimated_duration_seconds
            payload["estimated_duration_min"] = (
                _seconds_to_minutes(seconds) if seconds is not None else None
            )

        return payload

    async def _apply_update(
        self,
        current: AITaskRecord,
        updates: AITaskUpdate,
        check_transition: bool,
    ) -> AITaskRecord:
        if check_transition and updates.status is not None:
            ensure_transition(current.status, updates.status, current.id)

        payload = self._build_update_payload(updates, current)
        updated = self._unwrap(
            await self.ai_tasks.update_by_user_and_id(self.user_id, current.id, payload)
        )
        self.log_operation(
            "info",
            "updated",
            ai_task_id=current.id,
            fields=sorted(payload),
        )
        return updated.enrich()
