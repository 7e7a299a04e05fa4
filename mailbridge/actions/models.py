"""
Workflow Action Models

Pydantic models for composed bodies and handler outcomes.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from mailbridge.shared.models.correlation import CorrelationState
from mailbridge.shared.workflow import WorkflowState


class CallbackId(str, Enum):
    """Slack action and view identifiers handled by the controller."""

    REPLY_ACTION = "reply_email"
    FORWARD_ACTION = "forward_email"
    REPLY_BODY_MODAL = "reply_body_modal"
    FORWARD_PICK_MODAL = "forward_pick_modal"
    FORWARD_REVIEW_MODAL = "forward_review_modal"
    LOADING_MODAL = "loading_modal"
    NOTICE_MODAL = "notice_modal"


class ComposedBody(BaseModel):
    """Text and HTML renditions of an outbound message body."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Plain-text body")
    html: str = Field(..., description="HTML body")


class WorkflowResult(BaseModel):
    """
    Outcome of one controller step.

    `state` is None when the input was ignored (wrong channel, unmatched
    subject, unknown callback). `response` is the JSON body returned to
    Slack for view submissions (errors or view update); None means an
    empty 200.
    """

    model_config = ConfigDict(frozen=True)

    state: WorkflowState | None = Field(default=None, description="Step reached")
    correlation: CorrelationState | None = Field(default=None, description="Bundle after this step")
    response: dict[str, Any] | None = Field(default=None, description="Body returned to Slack")
    posted_text: str | None = Field(default=None, description="Message posted to the conversation")
    ignored_reason: str | None = Field(default=None, description="Why the input was ignored")

    @property
    def ignored(self) -> bool:
        return self.state is None
