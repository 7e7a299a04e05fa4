"""
Slack Views

Block Kit payloads for the action prompt and the reply/forward modals.
Every payload carries the serialized CorrelationState (button `value` or
view `private_metadata`); workflow modals ask Slack to notify on close
so a cancellation can be logged.
"""

from typing import Any

from mailbridge.actions.models import CallbackId
from mailbridge.shared.models.correlation import CorrelationState
from mailbridge.shared.workflow import WorkflowAction

REPLY_BODY_BLOCK = "body_block"
REPLY_BODY_ACTION = "body"
FORWARD_TO_BLOCK = "to_block"
FORWARD_TO_ACTION = "to"

# Closes the whole modal stack in a view_submission response
CLEAR_RESPONSE = {"response_action": "clear"}


def _plain(text: str) -> dict[str, Any]:
    return {"type": "plain_text", "text": text}


def _mrkdwn_section(text: str) -> dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def _modal(
    callback_id: CallbackId,
    title: str,
    submit: str | None,
    close: str,
    blocks: list[dict[str, Any]],
    state: CorrelationState,
) -> dict[str, Any]:
    view = {
        "type": "modal",
        "callback_id": callback_id.value,
        "title": _plain(title),
        "close": _plain(close),
        "notify_on_close": True,
        "blocks": blocks,
        "private_metadata": state.to_metadata(),
    }
    if submit:
        view["submit"] = _plain(submit)
    return view


def action_blocks(state: CorrelationState) -> list[dict[str, Any]]:
    """Reply/Forward prompt posted under a recognized notification."""
    value = state.to_metadata()
    return [
        _mrkdwn_section(
            f"Matched email subject:\n• _{state.subject_guess or '(unknown subject)'}_"
        ),
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": _plain("Reply"),
                    "action_id": CallbackId.REPLY_ACTION.value,
                    "style": "primary",
                    "value": value,
                },
                {
                    "type": "button",
                    "text": _plain("Forward"),
                    "action_id": CallbackId.FORWARD_ACTION.value,
                    "value": value,
                },
            ],
        },
    ]


def reply_body_modal(state: CorrelationState) -> dict[str, Any]:
    """Modal collecting the reply text for a resolved customer."""
    blocks = [
        _mrkdwn_section(f"*To:* {state.resolved_to}"),
        _mrkdwn_section(f"*Subject:* {state.resolved_subject}"),
        {
            "type": "input",
            "block_id": REPLY_BODY_BLOCK,
            "label": _plain("Message to customer"),
            "element": {
                "type": "plain_text_input",
                "action_id": REPLY_BODY_ACTION,
                "multiline": True,
                "placeholder": _plain("Type your reply…"),
            },
        },
    ]
    return _modal(CallbackId.REPLY_BODY_MODAL, "Reply to Customer", "Send", "Cancel", blocks, state)


def forward_pick_modal(state: CorrelationState, choices: list[str]) -> dict[str, Any]:
    """Modal for picking forward recipients from the configured list."""
    blocks = [
        _mrkdwn_section(f"*Subject:* {state.resolved_subject}"),
        {
            "type": "input",
            "block_id": FORWARD_TO_BLOCK,
            "label": _plain("Select recipients"),
            "element": {
                "type": "multi_static_select",
                "action_id": FORWARD_TO_ACTION,
                "options": [{"text": _plain(c), "value": c} for c in choices],
                "placeholder": _plain("Pick one or more"),
            },
        },
    ]
    return _modal(CallbackId.FORWARD_PICK_MODAL, "Forward to Team", "Review", "Cancel", blocks, state)


def forward_review_modal(state: CorrelationState) -> dict[str, Any]:
    """Confirmation modal listing the chosen recipients."""
    blocks = [
        _mrkdwn_section(f"*Recipients:* {', '.join(state.recipients)}"),
        _mrkdwn_section(f"*Subject:* {state.resolved_subject}"),
    ]
    return _modal(CallbackId.FORWARD_REVIEW_MODAL, "Review Forward", "Send", "Back", blocks, state)


def loading_modal(state: CorrelationState) -> dict[str, Any]:
    """Placeholder opened on a button click while the mail thread is resolved."""
    title = "Reply to Customer" if state.action == WorkflowAction.REPLY else "Forward to Team"
    blocks = [_mrkdwn_section(f"Looking up the Gmail thread for _{state.subject_guess}_…")]
    return _modal(CallbackId.LOADING_MODAL, title, None, "Cancel", blocks, state)


def notice_modal(text: str) -> dict[str, Any]:
    """Closing-only modal shown when a workflow cannot continue."""
    return {
        "type": "modal",
        "callback_id": CallbackId.NOTICE_MODAL.value,
        "title": _plain("Email actions"),
        "close": _plain("Close"),
        "blocks": [_mrkdwn_section(text)],
    }
