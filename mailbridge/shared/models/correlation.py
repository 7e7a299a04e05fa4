"""
Correlation State

The opaque bundle threaded through every step of an operator workflow.
Slack hands it back on each interaction (button value or modal
private_metadata); its serialized form is the whole workflow state.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mailbridge.shared.exceptions import CorrelationStateError
from mailbridge.shared.workflow import (
    WorkflowAction,
    WorkflowState,
    validate_transition,
)

# Button values allow 2000 characters, private_metadata 3000; one bundle
# travels in both, so the tighter limit applies
MAX_METADATA_LENGTH = 2000


class CorrelationState(BaseModel):
    """
    Immutable correlation bundle.

    Starts as a partial bundle (subject guess only) on the action
    buttons and is completed once the mail thread has been resolved.
    Fields may be added by `merge` but never changed once set.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    step: WorkflowState = Field(
        default=WorkflowState.DETECTED,
        description="Last workflow step reached",
    )
    action: WorkflowAction | None = Field(default=None, description="Reply or forward")
    channel: str | None = Field(default=None, description="Slack channel ID")
    thread_ts: str | None = Field(default=None, description="Slack conversation thread anchor")
    subject_guess: str = Field(default="", description="Subject extracted from the chat message")
    resolved_to: str | None = Field(default=None, description="Customer address for replies")
    resolved_subject: str | None = Field(default=None, description="Subject of the outbound message")
    thread_id: str | None = Field(default=None, description="Resolved mailbox thread ID")
    recipients: list[str] = Field(default_factory=list, description="Chosen forward recipients")

    def merge(self, **updates: Any) -> "CorrelationState":
        """
        Return a copy with additional fields set.

        `step` always advances; every other field may only be filled in
        (or repeated with the same value).

        Raises:
            CorrelationStateError: If an already-set field would change
        """
        current = self.model_dump()
        for name, value in updates.items():
            if name == "step":
                continue
            if name not in current:
                raise CorrelationStateError(
                    f"Unknown correlation field '{name}'",
                    field_name=name,
                )
            existing = current[name]
            if existing not in (None, "", []) and existing != value:
                raise CorrelationStateError(
                    f"Correlation field '{name}' is already set",
                    field_name=name,
                )
        return self.model_validate({**current, **updates})

    def advance(self, step: WorkflowState, **updates: Any) -> "CorrelationState":
        """Validate the step transition, then merge."""
        validate_transition(self.step, step)
        return self.merge(step=step, **updates)

    def to_metadata(self) -> str:
        """
        Serialize for a Slack button value or view private_metadata.

        Raises:
            CorrelationStateError: If the bundle exceeds Slack's size limit
        """
        raw = self.model_dump_json(exclude_defaults=True)
        if len(raw) > MAX_METADATA_LENGTH:
            raise CorrelationStateError(
                f"Correlation state is {len(raw)} characters; "
                f"the limit is {MAX_METADATA_LENGTH}",
            )
        return raw

    @classmethod
    def from_metadata(cls, raw: str | None) -> "CorrelationState":
        """
        Deserialize a bundle handed back by Slack.

        Raises:
            CorrelationStateError: If the bundle cannot be decoded
        """
        if not raw:
            return cls()
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise CorrelationStateError(f"Unreadable correlation state: {e}") from e
