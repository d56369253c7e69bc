"""AI task status state machine.

Defines which status changes an AI task may go through. ``completed`` is
terminal; ``failed`` and ``cancelled`` can only go back to ``pending``
(retry and restart). ``assigned`` and ``paused`` are valid statuses but
have no outgoing transitions in the table, so tasks placed there by other
tools cannot be moved through this service.
"""

from __future__ import annotations

from zmemory.database.models.ai_task import AITaskStatus
from zmemory.services.errors import InvalidTransitionError

VALID_TRANSITIONS: dict[AITaskStatus, frozenset[AITaskStatus]] = {
    AITaskStatus.pending: frozenset({AITaskStatus.in_progress, AITaskStatus.cancelled}),
    AITaskStatus.in_progress: frozenset(
        {AITaskStatus.completed, AITaskStatus.failed, AITaskStatus.cancelled}
    ),
    AITaskStatus.completed: frozenset(),
    AITaskStatus.failed: frozenset({AITaskStatus.pending}),
    AITaskStatus.cancelled: frozenset({AITaskStatus.pending}),
}


def _coerce(status: AITaskStatus | str) -> AITaskStatus | str:
    try:
        return AITaskStatus(status)
    except ValueError:
        return status


def validate_transition(current: AITaskStatus | str, target: AITaskStatus | str) -> bool:
    """Check whether a status change is allowed.

    Args:
        current: Current task status.
        target: Requested status.

    Returns:
        True if ``target`` is reachable from ``current`` in one step.
    """
    current_status = _coerce(current)
    target_status = _coerce(target)
    if not isinstance(current_status, AITaskStatus):
        return False
    return target_status in VALID_TRANSITIONS.get(current_status, frozenset())


def ensure_transition(
    current: AITaskStatus | str,
    target: AITaskStatus | str,
    task_id: str | None = None,
) -> None:
    """Raise InvalidTransitionError unless the status change is allowed."""
    if not validate_transition(current, target):
        raise InvalidTransitionError(_value(current), _value(target), task_id)


def _value(status: AITaskStatus | str) -> str:
    return status.value if isinstance(status, AITaskStatus) else str(status)
