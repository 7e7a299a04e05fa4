"""
Operator Workflow State Machine

Defines the steps of a reply/forward workflow and the valid transitions
between them. A workflow instance lives only inside the correlation state
bundle carried by each Slack interaction; nothing is stored server-side.
"""

from enum import Enum
from typing import Final

import structlog

from mailbridge.shared.exceptions import InvalidWorkflowTransitionError

log = structlog.get_logger()


class WorkflowAction(str, Enum):
    """Operator action chosen on a matched notification."""

    REPLY = "reply"
    FORWARD = "forward"


class WorkflowState(str, Enum):
    """
    Workflow step enum.

    States are mutually exclusive and represent how far an operator
    has progressed through a reply or forward.
    """

    DETECTED = "DETECTED"
    """Notification subject matched, action buttons offered."""

    ACTION_CHOSEN = "ACTION_CHOSEN"
    """Reply or Forward pressed, thread resolution in progress."""

    INPUT_COLLECTED = "INPUT_COLLECTED"
    """Reply text or forward recipients submitted."""

    REVIEWED = "REVIEWED"
    """Forward recipients confirmed on the review screen."""

    SENT = "SENT"
    """Outbound message submitted to the mailbox."""

    FAILED = "FAILED"
    """Resolution or delivery failed, operator notified."""

    CANCELLED = "CANCELLED"
    """Operator closed a form; nothing was sent."""

    @property
    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no outgoing transitions)."""
        return self in TERMINAL_STATES

    @classmethod
    def from_string(cls, value: str) -> "WorkflowState":
        """Convert string to WorkflowState enum."""
        try:
            return cls(value.upper())
        except ValueError as e:
            raise ValueError(
                f"Invalid workflow state: '{value}'. "
                f"Valid values are: {[s.value for s in cls]}"
            ) from e


TERMINAL_STATES: Final[frozenset[WorkflowState]] = frozenset({
    WorkflowState.SENT,
    WorkflowState.FAILED,
    WorkflowState.CANCELLED,
})

# Key: current state, Value: set of allowed next states
VALID_TRANSITIONS: Final[dict[WorkflowState, frozenset[WorkflowState]]] = {
    WorkflowState.DETECTED: frozenset({
        WorkflowState.ACTION_CHOSEN,
    }),
    WorkflowState.ACTION_CHOSEN: frozenset({
        WorkflowState.INPUT_COLLECTED,
        WorkflowState.FAILED,
        WorkflowState.CANCELLED,
    }),
    WorkflowState.INPUT_COLLECTED: frozenset({
        WorkflowState.REVIEWED,
        WorkflowState.SENT,
        WorkflowState.FAILED,
        WorkflowState.CANCELLED,
    }),
    WorkflowState.REVIEWED: frozenset({
        WorkflowState.SENT,
        WorkflowState.FAILED,
        WorkflowState.CANCELLED,
    }),
    WorkflowState.SENT: frozenset(),       # Terminal
    WorkflowState.FAILED: frozenset(),     # Terminal
    WorkflowState.CANCELLED: frozenset(),  # Terminal
}


def validate_transition(
    current_state: WorkflowState | str,
    new_state: WorkflowState | str,
    *,
    raise_on_invalid: bool = True,
) -> bool:
    """
    Validate that a workflow transition is allowed.

    Args:
        current_state: Step recorded in the correlation state
        new_state: Desired next step
        raise_on_invalid: If True, raise exception on invalid transition

    Returns:
        True if transition is valid

    Raises:
        InvalidWorkflowTransitionError: If transition is invalid and raise_on_invalid=True
    """
    if isinstance(current_state, str):
        current_state = WorkflowState.from_string(current_state)
    if isinstance(new_state, str):
        new_state = WorkflowState.from_string(new_state)

    allowed = VALID_TRANSITIONS.get(current_state, frozenset())
    is_valid = new_state in allowed

    if not is_valid and raise_on_invalid:
        log.warning(
            "invalid_workflow_transition",
            current_state=current_state.value,
            new_state=new_state.value,
            allowed_transitions=sorted(s.value for s in allowed),
        )
        raise InvalidWorkflowTransitionError(
            current_state=current_state.value,
            new_state=new_state.value,
            allowed_transitions=sorted(s.value for s in allowed),
        )

    return is_valid
