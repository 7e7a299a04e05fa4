"""
Test Workflow Controller

Unit tests for detection, action buttons, modal submissions, deferred
jobs, cancellation and dispatch. Slack, Gmail and EventBridge calls are
patched.
"""

import base64
import email
import json
from email.message import Message
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from mailbridge.actions.controller import (
    FORWARD_UNRESOLVED_TEXT,
    REPLY_UNRESOLVED_TEXT,
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
from mailbridge.actions.models import CallbackId
from mailbridge.shared.config import get_settings
from mailbridge.shared.exceptions import (
    DeliveryError,
    EventPublishError,
    GmailAPIError,
    SlackAPIError,
)
from mailbridge.shared.models.correlation import CorrelationState
from mailbridge.shared.models.events import (
    EmailSendRequestedEvent,
    ThreadResolutionRequestedEvent,
)
from mailbridge.shared.models.mail import Attachment, ResolvedThread
from mailbridge.shared.tools.mime_reader import extract_message
from mailbridge.shared.workflow import WorkflowAction, WorkflowState
from tests.utils.payloads import CUSTOMER, SHOP

ROOT_TS = "1700000000.000100"


@pytest.fixture
def slack_api():
    """Patch the Slack calls made by the controller."""
    with patch("mailbridge.shared.tools.slack.post_thread_message") as post, patch(
        "mailbridge.shared.tools.slack.open_view", return_value={"view": {"id": "V1"}}
    ) as open_view, patch(
        "mailbridge.shared.tools.slack.update_view"
    ) as update_view, patch(
        "mailbridge.shared.tools.slack.resolve_email_subject", return_value=""
    ) as resolve_subject:
        yield SimpleNamespace(
            post=post,
            open_view=open_view,
            update_view=update_view,
            resolve_subject=resolve_subject,
        )


@pytest.fixture
def jobs():
    """Patch job publication to EventBridge."""
    with patch("mailbridge.shared.tools.eventbridge.send_event", return_value="evt-1") as send:
        yield send


@pytest.fixture
def latest(customer_message):
    """Decoded latest customer message."""
    return extract_message(customer_message)


@pytest.fixture
def mail_api(latest):
    """Patch thread resolution and sending."""
    with patch(
        "mailbridge.actions.controller.find_thread_by_subject",
        return_value=ResolvedThread(thread_id="thread-1"),
    ) as find, patch(
        "mailbridge.actions.controller.get_latest_inbound_in_thread",
        return_value=latest,
    ) as get_latest, patch(
        "mailbridge.actions.controller.fetch_attachments", return_value=[]
    ) as fetch, patch(
        "mailbridge.shared.tools.gmail.send_raw_message", return_value="sent-1"
    ) as send:
        yield SimpleNamespace(find=find, get_latest=get_latest, fetch=fetch, send=send)


def chosen(action: WorkflowAction) -> CorrelationState:
    return CorrelationState(subject_guess="Refund notification").advance(
        WorkflowState.ACTION_CHOSEN,
        action=action,
        channel="C0WATCH",
        thread_ts=ROOT_TS,
    )


@pytest.fixture
def reply_state() -> CorrelationState:
    return chosen(WorkflowAction.REPLY).merge(
        resolved_to=CUSTOMER,
        resolved_subject="Re: Refund notification",
        thread_id="thread-1",
    )


@pytest.fixture
def forward_state() -> CorrelationState:
    return chosen(WorkflowAction.FORWARD).merge(
        resolved_subject="Fwd: Refund notification",
        thread_id="thread-1",
    )


@pytest.fixture
def review_state(forward_state) -> CorrelationState:
    return forward_state.advance(
        WorkflowState.INPUT_COLLECTED,
        recipients=["ops@example.com", "team@example.com"],
    ).advance(WorkflowState.REVIEWED)


def reply_values(text: str) -> dict:
    return {"body_block": {"body": {"type": "plain_text_input", "value": text}}}


def pick_values(*addresses: str) -> dict:
    return {
        "to_block": {
            "to": {
                "type": "multi_static_select",
                "selected_options": [{"value": a} for a in addresses],
            }
        }
    }


def sent_envelope(send_mock) -> Message:
    raw = send_mock.call_args.args[0]
    return email.message_from_bytes(base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)))


def resolution_job(state: CorrelationState) -> ThreadResolutionRequestedEvent:
    return ThreadResolutionRequestedEvent(correlation=state.to_metadata(), view_id="V1")


def send_job(state: CorrelationState, reply_text: str | None = None) -> EmailSendRequestedEvent:
    return EmailSendRequestedEvent(correlation=state.to_metadata(), reply_text=reply_text)


class TestHandleMessageEvent:
    """Tests for handle_message_event."""

    def test_offers_actions(self, slack_api, email_file_event):
        """A recognized notification gets Reply/Forward buttons in its thread."""
        result = handle_message_event(email_file_event)

        assert result.state == WorkflowState.DETECTED
        assert result.correlation.subject_guess == "Fwd: Refund notification"

        slack_api.post.assert_called_once()
        args, kwargs = slack_api.post.call_args
        assert args == ("C0WATCH", ROOT_TS, "Email actions")

        buttons = kwargs["blocks"][1]["elements"]
        assert [b["action_id"] for b in buttons] == ["reply_email", "forward_email"]
        assert json.loads(buttons[0]["value"]) == {"subject_guess": "Fwd: Refund notification"}

    def test_other_channel_ignored(self, slack_api, email_file_event):
        """Only the watched channel is handled."""
        event = dict(email_file_event, channel="C0OTHER")

        result = handle_message_event(event)

        assert result.ignored
        assert result.ignored_reason == "channel_not_watched"
        slack_api.post.assert_not_called()

    def test_watch_channel_unset(self, slack_api, email_file_event, monkeypatch):
        """Without a watched channel nothing is handled."""
        monkeypatch.setenv("MAILBRIDGE_WATCH_CHANNEL_ID", "")
        get_settings.cache_clear()

        assert handle_message_event(email_file_event).ignored
        slack_api.post.assert_not_called()

    def test_unrelated_subtype_ignored(self, slack_api):
        """Joins and similar housekeeping messages are ignored."""
        event = {
            "type": "message",
            "subtype": "channel_join",
            "channel": "C0WATCH",
            "ts": "1",
            "text": "Refund notification",
        }

        assert handle_message_event(event).ignored_reason == "subtype_ignored"
        slack_api.post.assert_not_called()

    def test_unmatched_subject(self, slack_api):
        """Subjects outside the templates are ignored."""
        event = {"type": "message", "channel": "C0WATCH", "ts": "1", "text": "Lunch on Friday?"}

        assert handle_message_event(event).ignored_reason == "subject_not_matched"
        slack_api.post.assert_not_called()

    def test_no_subject(self, slack_api):
        """Messages with nothing to read are ignored."""
        event = {"type": "message", "channel": "C0WATCH", "ts": "1", "text": ""}

        assert handle_message_event(event).ignored_reason == "subject_missing"

    def test_edited_message(self, slack_api):
        """An edited relay post is read from its inner message."""
        event = {
            "type": "message",
            "subtype": "message_changed",
            "channel": "C0WATCH",
            "ts": "1700000000.000900",
            "message": {"ts": "1700000000.000300", "text": "Subject: Refund notification"},
        }

        result = handle_message_event(event)

        assert result.state == WorkflowState.DETECTED
        assert slack_api.post.call_args.args[:2] == ("C0WATCH", "1700000000.000300")


class TestHandleReplyAction:
    """Tests for handle_reply_action."""

    def test_opens_loading_modal(self, slack_api, jobs, mail_api, block_actions_payload):
        """The click opens a loading modal and queues resolution without touching Gmail."""
        payload = block_actions_payload(
            "reply_email", CorrelationState(subject_guess="Refund notification").to_metadata()
        )

        result = handle_reply_action(payload)

        assert result.state == WorkflowState.ACTION_CHOSEN
        state = result.correlation
        assert state.action == WorkflowAction.REPLY
        assert state.channel == "C0WATCH"
        assert state.thread_ts == ROOT_TS
        assert state.thread_id is None

        trigger_id, view = slack_api.open_view.call_args.args
        assert trigger_id == "trigger-1"
        assert view["callback_id"] == "loading_modal"
        assert "submit" not in view

        event = jobs.call_args.args[0]
        assert isinstance(event, ThreadResolutionRequestedEvent)
        assert event.view_id == "V1"
        assert CorrelationState.from_metadata(event.correlation) == state

        mail_api.find.assert_not_called()
        mail_api.get_latest.assert_not_called()
        slack_api.post.assert_not_called()

    def test_publish_failure(self, slack_api, jobs, block_actions_payload):
        """A job that cannot be queued is reported in the thread."""
        jobs.side_effect = EventPublishError("ThreadResolutionRequested", "Throttled", "slow down")
        payload = block_actions_payload(
            "reply_email", CorrelationState(subject_guess="Refund notification").to_metadata()
        )

        result = dispatch_interaction(payload)

        assert result.state == WorkflowState.FAILED
        slack_api.post.assert_called_once_with(
            "C0WATCH",
            ROOT_TS,
            "Email action failed: Failed to publish event 'ThreadResolutionRequested': slow down",
        )


class TestHandleForwardAction:
    """Tests for handle_forward_action."""

    def test_opens_loading_modal(self, slack_api, jobs, mail_api, block_actions_payload):
        """Forward clicks are deferred the same way."""
        payload = block_actions_payload(
            "forward_email", CorrelationState(subject_guess="Refund notification").to_metadata()
        )

        result = handle_forward_action(payload)

        assert result.correlation.action == WorkflowAction.FORWARD
        _, view = slack_api.open_view.call_args.args
        assert view["title"]["text"] == "Forward to Team"
        assert jobs.call_count == 1
        mail_api.find.assert_not_called()


class TestHandleThreadResolution:
    """Tests for handle_thread_resolution."""

    def test_reply_form(self, slack_api, mail_api):
        """A resolved thread replaces the loading modal with the reply form."""
        state = chosen(WorkflowAction.REPLY)

        result = handle_thread_resolution(resolution_job(state), state)

        assert result.state == WorkflowState.ACTION_CHOSEN
        resolved = result.correlation
        assert resolved.resolved_to == CUSTOMER
        assert resolved.resolved_subject == "Re: Refund notification"
        assert resolved.thread_id == "thread-1"
        mail_api.find.assert_called_once_with("Refund notification")

        view_id, view = slack_api.update_view.call_args.args
        assert view_id == "V1"
        assert view["callback_id"] == "reply_body_modal"
        assert view["notify_on_close"] is True
        assert CorrelationState.from_metadata(view["private_metadata"]) == resolved
        slack_api.post.assert_not_called()

    def test_email_file_subject_preferred(self, slack_api, mail_api):
        """The subject on the Slack email file is searched instead of the guess."""
        slack_api.resolve_subject.return_value = "Order #1234 has been canceled"
        state = chosen(WorkflowAction.REPLY)

        handle_thread_resolution(resolution_job(state), state)

        slack_api.resolve_subject.assert_called_once_with("C0WATCH", ROOT_TS)
        mail_api.find.assert_called_once_with("Order #1234 has been canceled")

    def test_forward_picker(self, slack_api, mail_api):
        """The picker lists the configured team addresses."""
        state = chosen(WorkflowAction.FORWARD)

        result = handle_thread_resolution(resolution_job(state), state)

        assert result.correlation.resolved_subject == "Fwd: Refund notification"
        assert result.correlation.thread_id == "thread-1"

        _, view = slack_api.update_view.call_args.args
        assert view["callback_id"] == "forward_pick_modal"
        options = view["blocks"][1]["element"]["options"]
        assert [o["value"] for o in options] == ["ops@example.com", "team@example.com"]

    @pytest.mark.parametrize(
        ("action", "text"),
        [
            (WorkflowAction.REPLY, REPLY_UNRESOLVED_TEXT),
            (WorkflowAction.FORWARD, FORWARD_UNRESOLVED_TEXT),
        ],
    )
    def test_thread_not_found(self, slack_api, mail_api, action, text):
        """An unresolved thread shows a notice and posts guidance to use Gmail."""
        mail_api.find.return_value = None
        state = chosen(action)

        result = handle_thread_resolution(resolution_job(state), state)

        assert result.state == WorkflowState.FAILED
        slack_api.post.assert_called_once_with("C0WATCH", ROOT_TS, text)
        _, view = slack_api.update_view.call_args.args
        assert view["callback_id"] == "notice_modal"
        assert view["blocks"][0]["text"]["text"] == text

    def test_no_customer_address(self, slack_api, mail_api, latest):
        """A thread where only the shop wrote cannot be replied to."""
        mail_api.get_latest.return_value = latest.model_copy(
            update={"email_from": f"Shop <{SHOP}>", "reply_to": ""}
        )
        state = chosen(WorkflowAction.REPLY)

        result = handle_thread_resolution(resolution_job(state), state)

        assert result.state == WorkflowState.FAILED
        assert result.posted_text == REPLY_UNRESOLVED_TEXT

    def test_search_error(self, slack_api, mail_api):
        """A failing search is reported the same way as no match."""
        mail_api.find.side_effect = GmailAPIError("threads.list", 500, "backend")
        state = chosen(WorkflowAction.REPLY)

        result = handle_thread_resolution(resolution_job(state), state)

        assert result.posted_text == REPLY_UNRESOLVED_TEXT

    def test_notice_not_shown(self, slack_api, mail_api):
        """A closed loading modal does not stop the failure notice."""
        mail_api.find.return_value = None
        slack_api.update_view.side_effect = SlackAPIError("views.update", "not_found")
        state = chosen(WorkflowAction.REPLY)

        result = handle_thread_resolution(resolution_job(state), state)

        assert result.state == WorkflowState.FAILED
        assert result.posted_text == REPLY_UNRESOLVED_TEXT

    def test_loading_modal_closed(self, slack_api, mail_api):
        """If the operator already closed the modal, the workflow ends quietly."""
        slack_api.update_view.side_effect = SlackAPIError("views.update", "not_found")
        state = chosen(WorkflowAction.FORWARD)

        result = handle_thread_resolution(resolution_job(state), state)

        assert result.state == WorkflowState.CANCELLED
        assert result.correlation.step == WorkflowState.CANCELLED
        slack_api.post.assert_not_called()


class TestHandleReplySubmission:
    """Tests for handle_reply_submission."""

    def test_responds_before_sending(self, slack_api, jobs, mail_api, view_payload, reply_state):
        """The modal is cleared and the send queued; nothing is sent in the request."""
        payload = view_payload(
            "reply_body_modal", reply_state.to_metadata(), reply_values("  Refund issued. ")
        )

        result = handle_reply_submission(payload)

        assert result.state == WorkflowState.INPUT_COLLECTED
        assert result.response == {"response_action": "clear"}
        mail_api.send.assert_not_called()
        slack_api.post.assert_not_called()

        event = jobs.call_args.args[0]
        assert isinstance(event, EmailSendRequestedEvent)
        assert event.reply_text == "Refund issued."
        assert CorrelationState.from_metadata(event.correlation).step == (
            WorkflowState.INPUT_COLLECTED
        )

    def test_empty_body(self, slack_api, jobs, mail_api, view_payload, reply_state):
        """An empty reply keeps the modal open with a field error."""
        payload = view_payload("reply_body_modal", reply_state.to_metadata(), reply_values("   "))

        result = handle_reply_submission(payload)

        assert result.response == {
            "response_action": "errors",
            "errors": {"body_block": "Please enter a message."},
        }
        jobs.assert_not_called()
        slack_api.post.assert_not_called()

    def test_incomplete_context(self, slack_api, jobs, view_payload):
        """A bundle without a resolved thread fails without queueing."""
        payload = view_payload(
            "reply_body_modal",
            chosen(WorkflowAction.REPLY).to_metadata(),
            reply_values("Hi"),
        )

        result = handle_reply_submission(payload)

        assert result.state == WorkflowState.FAILED
        jobs.assert_not_called()
        slack_api.post.assert_called_once_with(
            "C0WATCH", ROOT_TS, "Reply failed: Reply context is incomplete"
        )


class TestHandleForwardPick:
    """Tests for handle_forward_pick."""

    def test_moves_to_review(self, view_payload, forward_state):
        """Valid recipients switch the modal to the review view."""
        payload = view_payload(
            "forward_pick_modal",
            forward_state.to_metadata(),
            pick_values("OPS@example.com", "ops@example.com"),
        )

        result = handle_forward_pick(payload)

        assert result.state == WorkflowState.REVIEWED
        assert result.correlation.recipients == ["ops@example.com"]
        assert result.response["response_action"] == "update"
        view = result.response["view"]
        assert view["callback_id"] == "forward_review_modal"
        assert CorrelationState.from_metadata(view["private_metadata"]) == result.correlation

    def test_nothing_selected(self, view_payload, forward_state):
        """At least one recipient is required."""
        payload = view_payload("forward_pick_modal", forward_state.to_metadata(), pick_values())

        result = handle_forward_pick(payload)

        assert result.response == {
            "response_action": "errors",
            "errors": {"to_block": "Pick at least one recipient"},
        }

    def test_unlisted_recipient(self, view_payload, forward_state):
        """Addresses outside the configured list are refused."""
        payload = view_payload(
            "forward_pick_modal",
            forward_state.to_metadata(),
            pick_values("ops@example.com", "evil@example.com"),
        )

        result = handle_forward_pick(payload)

        assert result.response["errors"]["to_block"] == "Not an allowed recipient: evil@example.com"
        assert result.correlation.step == WorkflowState.ACTION_CHOSEN


class TestHandleForwardReview:
    """Tests for handle_forward_review."""

    def test_responds_before_sending(self, slack_api, jobs, mail_api, view_payload, review_state):
        """Confirming clears the modal and queues the forward."""
        payload = view_payload("forward_review_modal", review_state.to_metadata())

        result = handle_forward_review(payload)

        assert result.state == WorkflowState.REVIEWED
        assert result.response == {"response_action": "clear"}
        mail_api.fetch.assert_not_called()
        mail_api.send.assert_not_called()

        event = jobs.call_args.args[0]
        assert isinstance(event, EmailSendRequestedEvent)
        assert event.reply_text is None
        assert CorrelationState.from_metadata(event.correlation) == review_state


class TestHandleEmailSend:
    """Tests for handle_email_send."""

    def test_sends_reply(self, slack_api, mail_api, reply_state):
        """The reply is sent into the thread and confirmed in Slack."""
        state = reply_state.advance(WorkflowState.INPUT_COLLECTED)

        result = handle_email_send(send_job(state, "Refund issued."), state)

        assert result.state == WorkflowState.SENT
        assert result.correlation.step == WorkflowState.SENT

        send_kwargs = mail_api.send.call_args.kwargs
        assert send_kwargs == {"operation": "reply", "recipient": CUSTOMER, "thread_id": "thread-1"}

        msg = sent_envelope(mail_api.send)
        assert msg["To"] == CUSTOMER
        assert msg["From"] == SHOP
        assert msg["Subject"] == "Re: Refund notification"
        assert msg["In-Reply-To"] == "<orig-1@mail.example.com>"
        assert msg["References"] == "<root-0@mail.example.com> <orig-1@mail.example.com>"

        expected = (
            f"Replied to customer ({CUSTOMER}) from {SHOP}. "
            "Subject: Re: Refund notification"
        )
        slack_api.post.assert_called_once_with("C0WATCH", ROOT_TS, expected)
        assert result.posted_text == expected

    def test_reply_delivery_failure(self, slack_api, mail_api, reply_state):
        """A failed send is reported in the thread."""
        mail_api.send.side_effect = DeliveryError("reply", CUSTOMER, "quota exceeded")
        state = reply_state.advance(WorkflowState.INPUT_COLLECTED)

        result = handle_email_send(send_job(state, "Hi"), state)

        assert result.state == WorkflowState.FAILED
        slack_api.post.assert_called_once_with(
            "C0WATCH",
            ROOT_TS,
            "Reply failed: Gmail reply failed for jane@example.com: quota exceeded",
        )

    def test_reply_without_text(self, slack_api, mail_api, reply_state):
        """A job missing its reply text never sends."""
        state = reply_state.advance(WorkflowState.INPUT_COLLECTED)

        result = handle_email_send(send_job(state), state)

        assert result.state == WorkflowState.FAILED
        mail_api.send.assert_not_called()
        assert result.posted_text == "Reply failed: Reply context is incomplete"

    def test_sends_forward(self, slack_api, mail_api, review_state, latest):
        """The latest message is forwarded with its attachments."""
        mail_api.fetch.return_value = [
            Attachment(filename="invoice.pdf", mime_type="application/pdf", data_b64="SGk=")
        ]

        result = handle_email_send(send_job(review_state), review_state)

        assert result.state == WorkflowState.SENT
        mail_api.fetch.assert_called_once_with(latest)

        assert mail_api.send.call_args.kwargs == {
            "operation": "forward",
            "recipient": "ops@example.com, team@example.com",
        }
        msg = sent_envelope(mail_api.send)
        assert msg["To"] == "ops@example.com, team@example.com"
        assert msg["Subject"] == "Fwd: Refund notification"
        parts = msg.get_payload()
        assert len(parts) == 2
        assert parts[1].get_filename() == "invoice.pdf"
        assert parts[1].get_payload(decode=True) == b"Hi"

        slack_api.post.assert_called_once_with(
            "C0WATCH",
            ROOT_TS,
            f"Forwarded from {SHOP} to: ops@example.com, team@example.com. "
            "Subject: Fwd: Refund notification",
        )

    def test_attachment_failure(self, slack_api, mail_api, review_state):
        """A failed attachment fetch aborts the forward."""
        mail_api.fetch.side_effect = GmailAPIError("attachments.get", 404, "gone")

        result = handle_email_send(send_job(review_state), review_state)

        assert result.state == WorkflowState.FAILED
        mail_api.send.assert_not_called()
        slack_api.post.assert_called_once_with(
            "C0WATCH", ROOT_TS, "Forward failed: Gmail attachments.get failed: gone"
        )


class TestHandleViewClosed:
    """Tests for handle_view_closed."""

    @pytest.mark.parametrize(
        "callback_id",
        ["reply_body_modal", "forward_pick_modal", "forward_review_modal", "loading_modal"],
    )
    def test_cancelled_silently(self, slack_api, mail_api, view_payload, reply_state, callback_id):
        """Closing any modal cancels without posting or sending."""
        payload = view_payload(callback_id, reply_state.to_metadata(), payload_type="view_closed")

        result = handle_view_closed(payload)

        assert result.state == WorkflowState.CANCELLED
        assert result.correlation.step == WorkflowState.CANCELLED
        slack_api.post.assert_not_called()
        mail_api.send.assert_not_called()

    def test_unreadable_metadata(self, slack_api, view_payload):
        """A broken bundle still cancels."""
        payload = view_payload("reply_body_modal", "not-json", payload_type="view_closed")

        assert handle_view_closed(payload).state == WorkflowState.CANCELLED
        slack_api.post.assert_not_called()


class TestDispatchInteraction:
    """Tests for dispatch_interaction."""

    def test_routes_view_closed(self, slack_api, view_payload, reply_state):
        """view_closed payloads are routed to the cancel handler."""
        payload = view_payload(
            CallbackId.REPLY_BODY_MODAL.value, reply_state.to_metadata(), payload_type="view_closed"
        )

        assert dispatch_interaction(payload).state == WorkflowState.CANCELLED

    def test_unknown_action(self, slack_api, block_actions_payload):
        """Unknown buttons are ignored."""
        result = dispatch_interaction(block_actions_payload("something_else", "{}"))

        assert result.ignored_reason == "unknown_interaction"
        slack_api.post.assert_not_called()

    def test_unknown_payload_type(self):
        """Shortcuts and other payload types are ignored."""
        assert dispatch_interaction({"type": "shortcut"}).ignored

    def test_unreadable_button_value(self, slack_api, jobs, block_actions_payload):
        """Handler errors become a FAILED result posted in the thread."""
        result = dispatch_interaction(block_actions_payload("reply_email", "not-json"))

        assert result.state == WorkflowState.FAILED
        channel, thread_ts, text = slack_api.post.call_args.args
        assert (channel, thread_ts) == ("C0WATCH", ROOT_TS)
        assert text.startswith("Email action failed: Unreadable correlation state")
        slack_api.open_view.assert_not_called()
        jobs.assert_not_called()

    def test_second_send_refused(self, slack_api, jobs, view_payload, review_state):
        """A bundle that already reached SENT cannot queue another send."""
        sent_state = review_state.advance(WorkflowState.SENT)
        payload = view_payload("forward_review_modal", sent_state.to_metadata())

        result = dispatch_interaction(payload)

        assert result.state == WorkflowState.FAILED
        jobs.assert_not_called()
        assert slack_api.post.call_args.args[2].startswith("Email action failed: Cannot transition")

    def test_failure_notice_not_posted(self, slack_api, block_actions_payload):
        """A failing Slack post does not escape the dispatcher."""
        slack_api.post.side_effect = SlackAPIError("chat.postMessage", "channel_not_found")

        result = dispatch_interaction(block_actions_payload("reply_email", "not-json"))

        assert result.state == WorkflowState.FAILED
        assert result.posted_text is None


class TestDispatchJob:
    """Tests for dispatch_job."""

    def test_routes_resolution(self, slack_api, mail_api):
        """ThreadResolutionRequested jobs resolve the thread and update the modal."""
        detail = resolution_job(chosen(WorkflowAction.REPLY)).to_eventbridge_detail()

        result = dispatch_job("ThreadResolutionRequested", detail)

        assert result.state == WorkflowState.ACTION_CHOSEN
        slack_api.update_view.assert_called_once()

    def test_routes_send(self, slack_api, mail_api, review_state):
        """EmailSendRequested jobs send the message."""
        result = dispatch_job("EmailSendRequested", send_job(review_state).to_eventbridge_detail())

        assert result.state == WorkflowState.SENT
        mail_api.send.assert_called_once()

    def test_unknown_job(self, slack_api, mail_api):
        """Unknown detail types are ignored."""
        result = dispatch_job("SomethingElse", {"correlation": "{}"})

        assert result.ignored_reason == "unknown_job"
        slack_api.post.assert_not_called()

    @pytest.mark.parametrize(
        "detail",
        [{}, {"correlation": "not-json"}, {"correlation": "{}", "view_id": ""}],
    )
    def test_invalid_job(self, slack_api, mail_api, detail):
        """Malformed jobs are dropped without posting."""
        result = dispatch_job("ThreadResolutionRequested", detail)

        assert result.ignored_reason == "invalid_job"
        slack_api.post.assert_not_called()

    def test_replayed_send_skipped(self, slack_api, mail_api, review_state):
        """A job whose workflow already finished never sends again."""
        sent_state = review_state.advance(WorkflowState.SENT)

        result = dispatch_job("EmailSendRequested", send_job(sent_state).to_eventbridge_detail())

        assert result.ignored_reason == "workflow_finished"
        mail_api.send.assert_not_called()
        slack_api.post.assert_not_called()

    def test_handler_error_contained(self, slack_api, mail_api):
        """Unexpected errors become FAILED and are posted in the thread."""
        slack_api.resolve_subject.side_effect = RuntimeError("boom")
        state = chosen(WorkflowAction.REPLY)

        result = dispatch_job(
            "ThreadResolutionRequested", resolution_job(state).to_eventbridge_detail()
        )

        assert result.state == WorkflowState.FAILED
        slack_api.post.assert_called_once_with("C0WATCH", ROOT_TS, "Email action failed: boom")


class TestDispatchEvent:
    """Tests for dispatch_event."""

    def test_message(self, slack_api, email_file_event):
        """Message events reach detection."""
        assert dispatch_event(email_file_event).state == WorkflowState.DETECTED

    def test_other_event_type(self, slack_api):
        """Other inner events are ignored."""
        assert dispatch_event({"type": "reaction_added"}).ignored_reason == "event_type_ignored"

    def test_post_failure(self, slack_api, email_file_event):
        """A failed prompt post is contained."""
        slack_api.post.side_effect = SlackAPIError("chat.postMessage", "not_in_channel")

        assert dispatch_event(email_file_event).state == WorkflowState.FAILED
