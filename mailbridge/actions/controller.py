"""
Workflow Controller

Stateless handlers for the operator workflow:

1. A recognized notification is posted in the watched channel (DETECTED)
2. The operator clicks Reply or Forward; the mail thread is resolved (ACTION_CHOSEN)
3. The operator types a reply or picks recipients (INPUT_COLLECTED)
4. Forwards are confirmed on a review view (REVIEWED)
5. The message is sent (SENT) or the attempt fails (FAILED)

Closing any modal ends the workflow (CANCELLED) without posting.

Slack interactions must be acknowledged within three seconds, so
interaction handlers never call Gmail. Button clicks open a loading
modal and publish ThreadResolutionRequested; submissions clear the modal
and publish EmailSendRequested. The workflow jobs Lambda runs those
jobs through `dispatch_job`.

Each handler runs in its own invocation. The only continuity between
steps is the CorrelationState carried in Slack button values, view
private_metadata and job events.
"""

from typing import Any

from pydantic import ValidationError
import structlog

from mailbridge.actions.compose import compose_forward, compose_reply
from mailbridge.actions.models import CallbackId, WorkflowResult
from mailbridge.actions.views import (
    CLEAR_RESPONSE,
    FORWARD_TO_ACTION,
    FORWARD_TO_BLOCK,
    REPLY_BODY_ACTION,
    REPLY_BODY_BLOCK,
    action_blocks,
    forward_pick_modal,
    forward_review_modal,
    loading_modal,
    notice_modal,
    reply_body_modal,
)
from mailbridge.shared.config import get_settings
from mailbridge.shared.exceptions import MailBridgeError, ResolutionError, SlackAPIError
from mailbridge.shared.models.correlation import CorrelationState
from mailbridge.shared.models.events import (
    JOB_EVENT_TYPES,
    EmailSendRequestedEvent,
    ThreadResolutionRequestedEvent,
)
from mailbridge.shared.models.mail import MailMessage
from mailbridge.shared.tools import eventbridge, gmail, slack
from mailbridge.shared.tools.attachments import fetch_attachments
from mailbridge.shared.tools.mime_writer import (
    FORWARD_PREFIX,
    REPLY_PREFIX,
    build_forward_raw,
    build_reply_raw,
)
from mailbridge.shared.tools.subjects import classify_subject, ensure_prefix
from mailbridge.shared.tools.threads import (
    find_thread_by_subject,
    get_latest_inbound_in_thread,
    resolve_reply_recipient,
)
from mailbridge.shared.workflow import (
    WorkflowAction,
    WorkflowState,
    validate_transition,
)

log = structlog.get_logger()

# Message subtypes used by email-to-Slack relays
ALLOWED_SUBTYPES = frozenset({"file_share", "bot_message", "message_changed"})

REPLY_UNRESOLVED_TEXT = (
    "Cannot determine customer email/subject/thread for reply. Please reply from Gmail."
)
FORWARD_UNRESOLVED_TEXT = (
    "Cannot locate the Gmail thread for this forward. Please forward from Gmail."
)


def _error_text(error: Exception) -> str:
    if isinstance(error, MailBridgeError):
        return error.message
    return str(error) or error.__class__.__name__


def _conversation(payload: dict[str, Any]) -> tuple[str | None, str | None]:
    """Channel and thread anchor of a block_actions payload."""
    channel = (payload.get("channel") or {}).get("id")
    message = payload.get("message") or {}
    return channel, message.get("thread_ts") or message.get("ts")


def _view_state(payload: dict[str, Any]) -> CorrelationState:
    view = payload.get("view") or {}
    return CorrelationState.from_metadata(view.get("private_metadata"))


def _view_values(payload: dict[str, Any]) -> dict[str, Any]:
    return ((payload.get("view") or {}).get("state") or {}).get("values") or {}


def _fail(
    state: CorrelationState,
    text: str,
    *,
    channel: str | None = None,
    thread_ts: str | None = None,
) -> WorkflowResult:
    """Move to FAILED and surface the failure in the conversation if known."""
    if validate_transition(state.step, WorkflowState.FAILED, raise_on_invalid=False):
        state = state.merge(step=WorkflowState.FAILED)

    channel = channel or state.channel
    thread_ts = thread_ts or state.thread_ts
    posted = None
    if channel:
        try:
            slack.post_thread_message(channel, thread_ts, text)
            posted = text
        except MailBridgeError as e:
            log.error("failure_notice_not_posted", channel=channel, error=str(e))

    return WorkflowResult(state=WorkflowState.FAILED, correlation=state, posted_text=posted)


# --- Detection ---


def handle_message_event(event: dict[str, Any]) -> WorkflowResult:
    """
    Offer Reply/Forward actions under a recognized notification.

    Args:
        event: Slack `message` event

    Returns:
        WorkflowResult in DETECTED, or ignored
    """
    settings = get_settings()

    log.info(
        "message_event_received",
        channel=event.get("channel"),
        subtype=event.get("subtype") or "",
        has_files=isinstance(event.get("files"), list),
        has_attachments=isinstance(event.get("attachments"), list),
        ts=event.get("ts"),
    )

    if not settings.watch_channel_id or event.get("channel") != settings.watch_channel_id:
        return WorkflowResult(ignored_reason="channel_not_watched")

    subtype = event.get("subtype") or ""
    if subtype and subtype not in ALLOWED_SUBTYPES:
        return WorkflowResult(ignored_reason="subtype_ignored")

    base = event
    if subtype == "message_changed" and isinstance(event.get("message"), dict):
        base = event["message"]

    subject = slack.extract_subject_from_event(base)
    if not subject:
        log.info("subject_missing", ts=event.get("ts"))
        return WorkflowResult(ignored_reason="subject_missing")

    classification = classify_subject(subject)
    if not classification.matched:
        log.info("subject_not_matched", subject=classification.normalized[:80])
        return WorkflowResult(ignored_reason="subject_not_matched")

    channel = event["channel"]
    thread_ts = base.get("ts") or event.get("ts")
    state = CorrelationState(subject_guess=subject)

    slack.post_thread_message(
        channel,
        thread_ts,
        "Email actions",
        blocks=action_blocks(state),
    )

    log.info(
        "actions_offered",
        channel=channel,
        thread_ts=thread_ts,
        subject=classification.normalized[:80],
    )
    return WorkflowResult(state=WorkflowState.DETECTED, correlation=state)


# --- Action buttons ---


def _choose_action(payload: dict[str, Any], action: WorkflowAction) -> CorrelationState:
    channel, thread_ts = _conversation(payload)
    actions = payload.get("actions") or [{}]
    state = CorrelationState.from_metadata(actions[0].get("value"))
    return state.advance(
        WorkflowState.ACTION_CHOSEN,
        action=action,
        channel=channel,
        thread_ts=thread_ts,
    )


def _request_resolution(payload: dict[str, Any], action: WorkflowAction) -> WorkflowResult:
    """
    Open a loading modal and defer thread resolution to the jobs Lambda.

    The trigger_id expires three seconds after the click, so the modal
    is opened before any Gmail call is made.
    """
    state = _choose_action(payload, action)
    opened = slack.open_view(payload.get("trigger_id", ""), loading_modal(state))
    view_id = (opened.get("view") or {}).get("id") or ""

    eventbridge.send_event(
        ThreadResolutionRequestedEvent(correlation=state.to_metadata(), view_id=view_id)
    )

    log.info("thread_resolution_requested", action=action.value, view_id=view_id)
    return WorkflowResult(state=WorkflowState.ACTION_CHOSEN, correlation=state)


def handle_reply_action(payload: dict[str, Any]) -> WorkflowResult:
    """
    Start a reply: open the loading modal and request thread resolution.

    Args:
        payload: Slack block_actions payload for the Reply button

    Returns:
        WorkflowResult in ACTION_CHOSEN
    """
    return _request_resolution(payload, WorkflowAction.REPLY)


def handle_forward_action(payload: dict[str, Any]) -> WorkflowResult:
    """Start a forward: open the loading modal and request thread resolution."""
    return _request_resolution(payload, WorkflowAction.FORWARD)


# --- View submissions ---


def handle_reply_submission(payload: dict[str, Any]) -> WorkflowResult:
    """
    Accept the operator's reply text and queue the send.

    An empty body keeps the modal open with a field error. Otherwise the
    modal is cleared at once; the jobs Lambda sends the reply and confirms
    in the conversation.

    Args:
        payload: Slack view_submission payload of the reply modal

    Returns:
        WorkflowResult in INPUT_COLLECTED (ACTION_CHOSEN on a field error)
    """
    state = _view_state(payload)

    reply_text = (
        (_view_values(payload).get(REPLY_BODY_BLOCK) or {})
        .get(REPLY_BODY_ACTION, {})
        .get("value")
        or ""
    ).strip()
    if not reply_text:
        return WorkflowResult(
            state=state.step,
            correlation=state,
            response={
                "response_action": "errors",
                "errors": {REPLY_BODY_BLOCK: "Please enter a message."},
            },
        )

    state = state.advance(WorkflowState.INPUT_COLLECTED)
    if not state.thread_id or not state.resolved_to:
        log.warning("reply_context_incomplete", thread_id=state.thread_id)
        return _fail(state, "Reply failed: Reply context is incomplete")

    eventbridge.send_event(
        EmailSendRequestedEvent(correlation=state.to_metadata(), reply_text=reply_text)
    )

    log.info("reply_queued", thread_id=state.thread_id)
    return WorkflowResult(
        state=WorkflowState.INPUT_COLLECTED,
        correlation=state,
        response=CLEAR_RESPONSE,
    )


def handle_forward_pick(payload: dict[str, Any]) -> WorkflowResult:
    """
    Validate chosen recipients and switch the modal to the review view.

    Args:
        payload: Slack view_submission payload of the recipient picker

    Returns:
        WorkflowResult in REVIEWED with a `response_action: update` body,
        or with a field error if the selection is invalid
    """
    settings = get_settings()
    state = _view_state(payload)

    selected = (
        (_view_values(payload).get(FORWARD_TO_BLOCK) or {})
        .get(FORWARD_TO_ACTION, {})
        .get("selected_options")
        or []
    )
    recipients: list[str] = []
    for option in selected:
        address = str(option.get("value") or "").strip().lower()
        if address and address not in recipients:
            recipients.append(address)

    error = None
    if not recipients:
        error = "Pick at least one recipient"
    else:
        unknown = [r for r in recipients if r not in settings.forward_recipients]
        if unknown:
            error = f"Not an allowed recipient: {', '.join(unknown)}"

    if error:
        return WorkflowResult(
            state=state.step,
            correlation=state,
            response={"response_action": "errors", "errors": {FORWARD_TO_BLOCK: error}},
        )

    state = state.advance(WorkflowState.INPUT_COLLECTED, recipients=recipients)
    state = state.advance(WorkflowState.REVIEWED)

    log.info("forward_recipients_chosen", count=len(recipients))
    return WorkflowResult(
        state=WorkflowState.REVIEWED,
        correlation=state,
        response={"response_action": "update", "view": forward_review_modal(state)},
    )


def handle_forward_review(payload: dict[str, Any]) -> WorkflowResult:
    """
    Accept the reviewed forward and queue the send.

    Args:
        payload: Slack view_submission payload of the review view

    Returns:
        WorkflowResult in REVIEWED with a `response_action: clear` body
    """
    state = _view_state(payload)
    validate_transition(state.step, WorkflowState.SENT)

    if not state.thread_id or not state.recipients:
        log.warning("forward_context_incomplete", thread_id=state.thread_id)
        return _fail(state, "Forward failed: Forward context is incomplete")

    eventbridge.send_event(EmailSendRequestedEvent(correlation=state.to_metadata()))

    log.info("forward_queued", thread_id=state.thread_id, recipient_count=len(state.recipients))
    return WorkflowResult(
        state=WorkflowState.REVIEWED,
        correlation=state,
        response=CLEAR_RESPONSE,
    )


def handle_view_closed(payload: dict[str, Any]) -> WorkflowResult:
    """
    Record a cancelled workflow. Never posts to the conversation.

    Args:
        payload: Slack view_closed payload

    Returns:
        WorkflowResult in CANCELLED
    """
    view = payload.get("view") or {}
    try:
        state = _view_state(payload)
    except MailBridgeError:
        state = CorrelationState()

    if validate_transition(state.step, WorkflowState.CANCELLED, raise_on_invalid=False):
        state = state.merge(step=WorkflowState.CANCELLED)

    log.info(
        "workflow_cancelled",
        callback_id=view.get("callback_id"),
        action=state.action.value if state.action else None,
        step=state.step.value,
    )
    return WorkflowResult(state=WorkflowState.CANCELLED, correlation=state)


# --- Deferred jobs ---


def _resolve_latest(state: CorrelationState) -> tuple[MailMessage, str]:
    """
    Resolve the mail thread behind a chat conversation.

    The subject of the Slack email file wins over the button's guess.

    Returns:
        Latest inbound message and the subject that was searched for

    Raises:
        ResolutionError: If no thread matches
    """
    search_subject = (
        slack.resolve_email_subject(state.channel or "", state.thread_ts or "")
        or state.subject_guess
    )

    found = find_thread_by_subject(search_subject)
    if not found:
        raise ResolutionError(
            "No Gmail thread matches this subject",
            subject_guess=search_subject,
        )

    latest = get_latest_inbound_in_thread(found.thread_id)
    return latest, search_subject


def _resolved_reply(state: CorrelationState) -> tuple[CorrelationState, dict[str, Any]]:
    settings = get_settings()
    latest, search_subject = _resolve_latest(state)
    resolved_to = resolve_reply_recipient(latest, settings.shop_from_email)
    base_subject = latest.subject or search_subject
    if not resolved_to or not base_subject:
        raise ResolutionError(
            "Customer address or subject missing",
            subject_guess=search_subject,
            thread_id=latest.thread_id,
        )

    state = state.merge(
        resolved_to=resolved_to,
        resolved_subject=ensure_prefix(base_subject, REPLY_PREFIX),
        thread_id=latest.thread_id,
    )
    return state, reply_body_modal(state)


def _resolved_forward(state: CorrelationState) -> tuple[CorrelationState, dict[str, Any]]:
    settings = get_settings()
    latest, search_subject = _resolve_latest(state)
    state = state.merge(
        resolved_subject=ensure_prefix(latest.subject or search_subject, FORWARD_PREFIX),
        thread_id=latest.thread_id,
    )
    return state, forward_pick_modal(state, settings.forward_recipients)


def handle_thread_resolution(
    event: ThreadResolutionRequestedEvent,
    state: CorrelationState,
) -> WorkflowResult:
    """
    Resolve the Gmail thread and replace the loading modal with the form.

    When nothing resolves, the loading modal shows the failure and the
    conversation is told to use Gmail instead.

    Args:
        event: ThreadResolutionRequested job
        state: Correlation state decoded from the job

    Returns:
        WorkflowResult in ACTION_CHOSEN, FAILED, or CANCELLED if the
        loading modal was already closed
    """
    is_reply = state.action == WorkflowAction.REPLY

    try:
        state, view = _resolved_reply(state) if is_reply else _resolved_forward(state)
    except MailBridgeError as e:
        text = REPLY_UNRESOLVED_TEXT if is_reply else FORWARD_UNRESOLVED_TEXT
        log.warning(
            "thread_unresolved",
            action=state.action.value if state.action else None,
            subject=state.subject_guess[:80],
            error=str(e),
        )
        try:
            slack.update_view(event.view_id, notice_modal(text))
        except SlackAPIError as update_error:
            log.info("notice_not_shown", view_id=event.view_id, error=str(update_error))
        return _fail(state, text)

    try:
        slack.update_view(event.view_id, view)
    except SlackAPIError as e:
        # The operator closed the loading modal before resolution finished
        log.info("loading_view_gone", view_id=event.view_id, error=str(e))
        return WorkflowResult(
            state=WorkflowState.CANCELLED,
            correlation=state.advance(WorkflowState.CANCELLED),
        )

    log.info("workflow_form_opened", action=state.action.value, thread_id=state.thread_id)
    return WorkflowResult(state=WorkflowState.ACTION_CHOSEN, correlation=state)


def _send_reply(state: CorrelationState, reply_text: str) -> WorkflowResult:
    settings = get_settings()

    try:
        if not state.thread_id or not state.resolved_to or not reply_text:
            raise ResolutionError("Reply context is incomplete", thread_id=state.thread_id)

        latest = get_latest_inbound_in_thread(state.thread_id)
        body = compose_reply(reply_text, latest)
        raw = build_reply_raw(
            settings.shop_from_email,
            state.resolved_to,
            state.resolved_subject or latest.subject,
            body.text,
            body.html,
            in_reply_to=latest.refs.in_reply_to,
            references=latest.refs.references,
        )
        gmail.send_raw_message(
            raw,
            operation="reply",
            recipient=state.resolved_to,
            thread_id=state.thread_id,
        )
    except Exception as e:
        log.error("reply_failed", thread_id=state.thread_id, error=str(e), exc_info=True)
        return _fail(state, f"Reply failed: {_error_text(e)}")

    state = state.advance(WorkflowState.SENT)
    text = (
        f"Replied to customer ({state.resolved_to}) from {settings.shop_from_email}. "
        f"Subject: {state.resolved_subject}"
    )
    slack.post_thread_message(state.channel or "", state.thread_ts, text)

    log.info("reply_sent", thread_id=state.thread_id)
    return WorkflowResult(state=WorkflowState.SENT, correlation=state, posted_text=text)


def _send_forward(state: CorrelationState) -> WorkflowResult:
    settings = get_settings()

    try:
        if not state.thread_id or not state.recipients:
            raise ResolutionError("Forward context is incomplete", thread_id=state.thread_id)

        latest = get_latest_inbound_in_thread(state.thread_id)
        attachments = fetch_attachments(latest)
        body = compose_forward(latest)
        raw = build_forward_raw(
            settings.shop_from_email,
            state.recipients,
            state.resolved_subject or latest.subject,
            body.text,
            body.html,
            attachments,
        )
        gmail.send_raw_message(
            raw,
            operation="forward",
            recipient=", ".join(state.recipients),
        )
    except Exception as e:
        log.error("forward_failed", thread_id=state.thread_id, error=str(e), exc_info=True)
        return _fail(state, f"Forward failed: {_error_text(e)}")

    state = state.advance(WorkflowState.SENT)
    text = (
        f"Forwarded from {settings.shop_from_email} to: {', '.join(state.recipients)}. "
        f"Subject: {state.resolved_subject}"
    )
    slack.post_thread_message(state.channel or "", state.thread_ts, text)

    log.info("forward_sent", thread_id=state.thread_id, recipient_count=len(state.recipients))
    return WorkflowResult(state=WorkflowState.SENT, correlation=state, posted_text=text)


def handle_email_send(event: EmailSendRequestedEvent, state: CorrelationState) -> WorkflowResult:
    """
    Compose and send a queued reply or forward, then confirm in Slack.

    The send is attempted once; failures are reported in the conversation
    and never retried.

    Args:
        event: EmailSendRequested job
        state: Correlation state decoded from the job

    Returns:
        WorkflowResult in SENT or FAILED
    """
    if state.action == WorkflowAction.REPLY:
        return _send_reply(state, event.reply_text or "")
    return _send_forward(state)


# --- Dispatch ---

ACTION_HANDLERS = {
    CallbackId.REPLY_ACTION.value: handle_reply_action,
    CallbackId.FORWARD_ACTION.value: handle_forward_action,
}

VIEW_HANDLERS = {
    CallbackId.REPLY_BODY_MODAL.value: handle_reply_submission,
    CallbackId.FORWARD_PICK_MODAL.value: handle_forward_pick,
    CallbackId.FORWARD_REVIEW_MODAL.value: handle_forward_review,
}


def _interaction_conversation(payload: dict[str, Any]) -> tuple[str | None, str | None]:
    if payload.get("type") == "block_actions":
        return _conversation(payload)
    try:
        state = _view_state(payload)
    except MailBridgeError:
        return None, None
    return state.channel, state.thread_ts


def dispatch_interaction(payload: dict[str, Any]) -> WorkflowResult:
    """
    Route an interactivity payload to its handler.

    Unexpected errors are logged, turned into FAILED and surfaced in the
    conversation when it is known; they never propagate to the caller.
    """
    payload_type = payload.get("type")
    if payload_type == "block_actions":
        actions = payload.get("actions") or [{}]
        handler = ACTION_HANDLERS.get(actions[0].get("action_id", ""))
    elif payload_type == "view_submission":
        handler = VIEW_HANDLERS.get((payload.get("view") or {}).get("callback_id", ""))
    elif payload_type == "view_closed":
        handler = handle_view_closed
    else:
        handler = None

    if handler is None:
        log.info("interaction_ignored", payload_type=payload_type)
        return WorkflowResult(ignored_reason="unknown_interaction")

    try:
        return handler(payload)
    except Exception as e:
        log.error(
            "interaction_failed",
            payload_type=payload_type,
            handler=handler.__name__,
            error=str(e),
            exc_info=True,
        )
        channel, thread_ts = _interaction_conversation(payload)
        state = CorrelationState()
        return _fail(
            state,
            f"Email action failed: {_error_text(e)}",
            channel=channel,
            thread_ts=thread_ts,
        )


def dispatch_event(event: dict[str, Any]) -> WorkflowResult:
    """Route an Events API inner event; only `message` events are handled."""
    if event.get("type") != "message":
        return WorkflowResult(ignored_reason="event_type_ignored")
    try:
        return handle_message_event(event)
    except Exception as e:
        log.error("message_event_failed", error=str(e), exc_info=True)
        return WorkflowResult(state=WorkflowState.FAILED)


JOB_HANDLERS = {
    ThreadResolutionRequestedEvent.detail_type(): handle_thread_resolution,
    EmailSendRequestedEvent.detail_type(): handle_email_send,
}


def dispatch_job(detail_type: str, detail: dict[str, Any]) -> WorkflowResult:
    """
    Route a deferred workflow job to its handler.

    Jobs whose workflow already finished are skipped, so a replayed event
    never sends twice. Unexpected errors are logged, turned into FAILED
    and surfaced in the conversation; they never propagate to the caller.
    """
    handler = JOB_HANDLERS.get(detail_type)
    if handler is None:
        log.info("job_ignored", detail_type=detail_type)
        return WorkflowResult(ignored_reason="unknown_job")

    try:
        event = JOB_EVENT_TYPES[detail_type].model_validate(detail)
        state = CorrelationState.from_metadata(event.correlation)
    except (ValidationError, MailBridgeError) as e:
        log.error("job_invalid", detail_type=detail_type, error=str(e))
        return WorkflowResult(ignored_reason="invalid_job")

    if state.step.is_terminal:
        log.info("job_for_finished_workflow", detail_type=detail_type, step=state.step.value)
        return WorkflowResult(ignored_reason="workflow_finished")

    try:
        return handler(event, state)
    except Exception as e:
        log.error(
            "job_failed",
            detail_type=detail_type,
            handler=handler.__name__,
            error=str(e),
            exc_info=True,
        )
        return _fail(state, f"Email action failed: {_error_text(e)}")


__all__ = [
    "ALLOWED_SUBTYPES",
    "dispatch_event",
    "dispatch_interaction",
    "dispatch_job",
    "handle_email_send",
    "handle_forward_action",
    "handle_forward_pick",
    "handle_forward_review",
    "handle_message_event",
    "handle_reply_action",
    "handle_reply_submission",
    "handle_thread_resolution",
    "handle_view_closed",
]
