"""
Test Workflow State Machine

Unit tests for operator workflow steps, transitions and validation.
"""

import pytest

from mailbridge.shared.exceptions import InvalidWorkflowTransitionError
from mailbridge.shared.workflow import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    WorkflowAction,
    WorkflowState,
    validate_transition,
)


class TestWorkflowState:
    """Tests for WorkflowState enum."""

    def test_all_states_defined(self):
        """Verify all expected states are defined."""
        expected_states = [
            "DETECTED",
            "ACTION_CHOSEN",
            "INPUT_COLLECTED",
            "REVIEWED",
            "SENT",
            "FAILED",
            "CANCELLED",
        ]
        assert sorted(s.value for s in WorkflowState) == sorted(expected_states)

    def test_from_string_valid(self):
        """Conversion is case-insensitive."""
        assert WorkflowState.from_string("SENT") == WorkflowState.SENT
        assert WorkflowState.from_string("action_chosen") == WorkflowState.ACTION_CHOSEN

    def test_from_string_invalid(self):
        """Unknown names raise ValueError."""
        with pytest.raises(ValueError, match="Invalid workflow state"):
            WorkflowState.from_string("DONE")

    def test_is_terminal_property(self):
        """Only outcomes are terminal."""
        assert WorkflowState.SENT.is_terminal is True
        assert WorkflowState.FAILED.is_terminal is True
        assert WorkflowState.CANCELLED.is_terminal is True

        assert WorkflowState.DETECTED.is_terminal is False
        assert WorkflowState.ACTION_CHOSEN.is_terminal is False
        assert WorkflowState.INPUT_COLLECTED.is_terminal is False
        assert WorkflowState.REVIEWED.is_terminal is False

    def test_actions(self):
        """Reply and forward are the only actions."""
        assert {a.value for a in WorkflowAction} == {"reply", "forward"}


class TestValidTransitions:
    """Tests for the transition table."""

    def test_every_state_has_an_entry(self):
        """The table covers every state."""
        assert set(VALID_TRANSITIONS) == set(WorkflowState)

    def test_terminal_states_have_no_transitions(self):
        """Terminal states should have empty transition sets."""
        for state in TERMINAL_STATES:
            assert VALID_TRANSITIONS[state] == frozenset()

    def test_reply_path(self):
        """A reply goes straight from input to sent."""
        assert validate_transition(WorkflowState.DETECTED, WorkflowState.ACTION_CHOSEN)
        assert validate_transition(WorkflowState.ACTION_CHOSEN, WorkflowState.INPUT_COLLECTED)
        assert validate_transition(WorkflowState.INPUT_COLLECTED, WorkflowState.SENT)

    def test_forward_path(self):
        """A forward passes the review step."""
        assert validate_transition(WorkflowState.INPUT_COLLECTED, WorkflowState.REVIEWED)
        assert validate_transition(WorkflowState.REVIEWED, WorkflowState.SENT)

    @pytest.mark.parametrize(
        "state",
        [WorkflowState.ACTION_CHOSEN, WorkflowState.INPUT_COLLECTED, WorkflowState.REVIEWED],
    )
    def test_cancel_and_fail_from_open_steps(self, state):
        """Any open step can be cancelled or fail."""
        assert validate_transition(state, WorkflowState.CANCELLED)
        assert validate_transition(state, WorkflowState.FAILED)


class TestValidateTransition:
    """Tests for validate_transition."""

    def test_string_states(self):
        """String names are accepted."""
        assert validate_transition("detected", "ACTION_CHOSEN") is True

    def test_invalid_raises(self):
        """Skipping steps raises with the allowed transitions listed."""
        with pytest.raises(InvalidWorkflowTransitionError) as exc_info:
            validate_transition(WorkflowState.DETECTED, WorkflowState.SENT)

        assert exc_info.value.current_state == "DETECTED"
        assert exc_info.value.new_state == "SENT"
        assert exc_info.value.allowed_transitions == ["ACTION_CHOSEN"]

    def test_invalid_without_raise(self):
        """raise_on_invalid=False reports instead of raising."""
        assert (
            validate_transition(
                WorkflowState.SENT,
                WorkflowState.SENT,
                raise_on_invalid=False,
            )
            is False
        )

    def test_no_second_send(self):
        """A sent workflow cannot send again."""
        with pytest.raises(InvalidWorkflowTransitionError):
            validate_transition(WorkflowState.SENT, WorkflowState.SENT)
