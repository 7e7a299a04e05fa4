"""
Event Models

Pydantic models for workflow jobs deferred through EventBridge.

Slack expects every interaction to be acknowledged within three seconds,
so Gmail work never runs inside the interaction request. The interaction
handler publishes one of these events and returns; the workflow jobs
Lambda picks it up and carries the workflow forward.
"""

from pydantic import BaseModel, ConfigDict, Field


class BaseJobEvent(BaseModel):
    """Base class for workflow job events."""

    model_config = ConfigDict(frozen=True)

    correlation: str = Field(
        ...,
        min_length=2,
        description="Serialized CorrelationState of the workflow",
    )

    @classmethod
    def detail_type(cls) -> str:
        raise NotImplementedError

    def to_eventbridge_detail(self) -> dict:
        """Convert to EventBridge detail payload."""
        return self.model_dump(mode="json", exclude_none=True)


class ThreadResolutionRequestedEvent(BaseJobEvent):
    """
    Operator clicked Reply or Forward.

    Source: SlackInteractions (block_actions)
    Triggers: resolve the Gmail thread, then replace the loading modal
    """

    view_id: str = Field(..., min_length=1, description="Loading modal to replace")

    @classmethod
    def detail_type(cls) -> str:
        return "ThreadResolutionRequested"


class EmailSendRequestedEvent(BaseJobEvent):
    """
    Operator confirmed a reply or forward.

    Source: SlackInteractions (view_submission)
    Triggers: compose and send the email, then confirm in the Slack thread
    """

    reply_text: str | None = Field(
        default=None,
        description="Operator's reply text (replies only)",
    )

    @classmethod
    def detail_type(cls) -> str:
        return "EmailSendRequested"


JOB_EVENT_TYPES: dict[str, type[BaseJobEvent]] = {
    ThreadResolutionRequestedEvent.detail_type(): ThreadResolutionRequestedEvent,
    EmailSendRequestedEvent.detail_type(): EmailSendRequestedEvent,
}
