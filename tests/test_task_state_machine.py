"""Tests for task status transition validation."""
import pytest
from opsdesk_core.models import TaskStatus
from opsdesk_core.task_state_machine import (
    is_transition_valid,
    validate_transition,
    next_status,
    TaskStateTransitionError,
    get_allowed_transitions
)


class TestTaskStateTransitions:
    """Test task state machine transition validation."""

    def test_valid_forward_transitions(self):
        """Test that forward transitions are allowed."""
        # Pending → In Progress
        assert is_transition_valid(TaskStatus.PENDING, TaskStatus.IN_PROGRESS)
        validate_transition(TaskStatus.PENDING, TaskStatus.IN_PROGRESS)  # Should not raise

        # In Progress → Done
        assert is_transition_valid(TaskStatus.IN_PROGRESS, TaskStatus.DONE)
        validate_transition(TaskStatus.IN_PROGRESS, TaskStatus.DONE)

        # Pending → Done (quick completion)
        assert is_transition_valid(TaskStatus.PENDING, TaskStatus.DONE)
        validate_transition(TaskStatus.PENDING, TaskStatus.DONE)

    def test_noop_transitions_allowed(self):
        """Test that no-op transitions (same status) are always allowed."""
        for status in TaskStatus:
            assert is_transition_valid(status, status)
            validate_transition(status, status)  # Should not raise

    def test_backward_transition_blocked(self):
        """Test that In Progress → Pending is blocked."""
        assert not is_transition_valid(TaskStatus.IN_PROGRESS, TaskStatus.PENDING)

        with pytest.raises(TaskStateTransitionError) as exc_info:
            validate_transition(TaskStatus.IN_PROGRESS, TaskStatus.PENDING)

        error = exc_info.value
        assert error.current_status == TaskStatus.IN_PROGRESS
        assert error.requested_status == TaskStatus.PENDING
        assert "done" in str(error)

    def test_done_is_terminal(self):
        """Test that done tasks cannot leave done."""
        for status in TaskStatus:
            if status != TaskStatus.DONE:
                assert not is_transition_valid(TaskStatus.DONE, status)

                with pytest.raises(TaskStateTransitionError) as exc_info:
                    validate_transition(TaskStatus.DONE, status)

                assert "terminal" in str(exc_info.value).lower()

    def test_get_allowed_transitions(self):
        """Test getting allowed transitions from each state (no-op excluded)."""
        assert set(get_allowed_transitions(TaskStatus.PENDING)) == {TaskStatus.IN_PROGRESS, TaskStatus.DONE}
        assert get_allowed_transitions(TaskStatus.IN_PROGRESS) == [TaskStatus.DONE]
        assert get_allowed_transitions(TaskStatus.DONE) == []

    def test_next_status(self):
        """Test the one-step progression used by advance."""
        assert next_status(TaskStatus.PENDING) == TaskStatus.IN_PROGRESS
        assert next_status(TaskStatus.IN_PROGRESS) == TaskStatus.DONE
        assert next_status(TaskStatus.DONE) is None

    def test_error_carries_allowed_transitions(self):
        """Test that the error lists what would have been accepted."""
        with pytest.raises(TaskStateTransitionError) as exc_info:
            validate_transition(TaskStatus.IN_PROGRESS, TaskStatus.PENDING)

        assert TaskStatus.DONE in exc_info.value.allowed_transitions
