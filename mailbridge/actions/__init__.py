"""
Operator Workflow

Handles Slack events and interactions for replying to or forwarding
customer order emails from a Slack thread.

Each step:
1. Receives one Slack event or interaction
2. Decodes the CorrelationState carried by the button or modal
3. Opens the next view, or publishes a job for the Gmail work
4. Jobs resolve the Gmail thread, or send the email and confirm in Slack
5. Exits immediately

Following stateless principles:
- No server-side session
- Correlation state travels with every Slack payload
"""

from mailbridge.actions.compose import (
    compose_forward,
    compose_reply,
    text_to_safe_html,
)
from mailbridge.actions.controller import (
    dispatch_event,
    dispatch_interaction,
    dispatch_job,
    handle_email_send,
    handle_forward_action,
    handle_forward_pick,
    handle_forward_review,
    handle_message_event,
    handle_reply_action,
    handle_reply_submission,
    handle_thread_resolution,
    handle_view_closed,
)
from mailbridge.actions.models import (
    CallbackId,
    ComposedBody,
    WorkflowResult,
)

__all__ = [
    # Controller
    "dispatch_event",
    "dispatch_interaction",
    "dispatch_job",
    "handle_message_event",
    "handle_reply_action",
    "handle_forward_action",
    "handle_reply_submission",
    "handle_forward_pick",
    "handle_forward_review",
    "handle_view_closed",
    "handle_thread_resolution",
    "handle_email_send",
    # Composer
    "compose_forward",
    "compose_reply",
    "text_to_safe_html",
    # Models
    "CallbackId",
    "ComposedBody",
    "WorkflowResult",
]
