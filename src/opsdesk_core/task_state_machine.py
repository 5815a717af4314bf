"""State machine validation for incident task status transitions.

Tasks only move forward:
- pending -> in_progress -> done
- pending -> done is allowed (quick manual completion)
- done is terminal
"""
import logging
from typing import Optional

from .models import TaskStatus

logger = logging.getLogger("opsdesk-core.task_state_machine")


class TaskStateTransitionError(Exception):
    """Raised when an invalid task state transition is attempted."""

    def __init__(
        self,
        message: str,
        current_status: TaskStatus,
        requested_status: TaskStatus,
        allowed_transitions: list[TaskStatus]
    ):
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed_transitions = allowed_transitions


# Maps current status → list of allowed next statuses
TASK_TRANSITION_MATRIX: dict[TaskStatus, list[TaskStatus]] = {
    TaskStatus.PENDING: [
        TaskStatus.PENDING,       # No-op (allowed)
        TaskStatus.IN_PROGRESS,   # Forward: work started
        TaskStatus.DONE,          # Forward: completed without being started
    ],
    TaskStatus.IN_PROGRESS: [
        TaskStatus.IN_PROGRESS,   # No-op (allowed)
        TaskStatus.DONE,          # Forward: completed
    ],
    TaskStatus.DONE: [
        TaskStatus.DONE,          # No-op (allowed)
        # Terminal state - no transitions out
    ],
}

# One-step progression used by "advance"
NEXT_STATUS: dict[TaskStatus, Optional[TaskStatus]] = {
    TaskStatus.PENDING: TaskStatus.IN_PROGRESS,
    TaskStatus.IN_PROGRESS: TaskStatus.DONE,
    TaskStatus.DONE: None,
}


def is_transition_valid(current_status: TaskStatus, new_status: TaskStatus) -> bool:
    """Check if a status transition is valid."""
    return new_status in TASK_TRANSITION_MATRIX.get(current_status, [])


def validate_transition(current_status: TaskStatus, new_status: TaskStatus) -> None:
    """
    Validate a status transition and raise exception if invalid.

    Args:
        current_status: Current task status
        new_status: Requested task status

    Raises:
        TaskStateTransitionError: If the transition is not allowed
    """
    if current_status == new_status:
        logger.debug(f"No-op transition: {current_status.value} → {new_status.value}")
        return

    if not is_transition_valid(current_status, new_status):
        allowed_transitions = TASK_TRANSITION_MATRIX.get(current_status, [])
        allowed_names = [s.value for s in allowed_transitions if s != current_status]

        error_msg = f"Invalid task status transition: {current_status.value} → {new_status.value}."
        if allowed_names:
            error_msg += f" From {current_status.value}, you can only transition to: {', '.join(allowed_names)}."
        else:
            error_msg += " Done tasks are terminal; create a new task for follow-up work."

        logger.warning(f"Blocked transition: {error_msg}")
        raise TaskStateTransitionError(
            message=error_msg,
            current_status=current_status,
            requested_status=new_status,
            allowed_transitions=allowed_transitions
        )


def next_status(current_status: TaskStatus) -> Optional[TaskStatus]:
    """Status reached by advancing one step, or None when terminal."""
    return NEXT_STATUS.get(current_status)


def get_allowed_transitions(current_status: TaskStatus) -> list[TaskStatus]:
    """Allowed next statuses, excluding the no-op."""
    return [s for s in TASK_TRANSITION_MATRIX.get(current_status, []) if s != current_status]
