"""
Slack Tools

Slack Web API wrappers, request signature verification, and extraction
of email metadata from bot-relayed email posts.

Bot-relayed emails show up in one of three shapes:
1. A structured file with mode "email" carrying `subject` or `headers.subject`
2. A legacy attachment whose `title` is the subject
3. Plain text whose first line is "Subject: ..." (or just the first line)
"""

import re
from functools import lru_cache
from typing import Any

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError
from slack_sdk.signature import SignatureVerifier
import structlog

from mailbridge.shared.exceptions import SlackAPIError
from mailbridge.shared.tools.secrets import get_credentials

log = structlog.get_logger()

SUBJECT_LINE_PATTERN = re.compile(r"^subject:\s*", re.IGNORECASE)


@lru_cache(maxsize=1)
def _get_client() -> WebClient:
    """Get Slack Web API client."""
    credentials = get_credentials()
    credentials.require("slack_bot_token")
    return WebClient(token=credentials.slack_bot_token)


def _call(method: str, **kwargs: Any) -> dict[str, Any]:
    """Invoke a Web API method, mapping SlackApiError to SlackAPIError."""
    client = _get_client()
    # "chat.postMessage" -> client.chat_postMessage
    endpoint = getattr(client, method.replace(".", "_"))
    try:
        response = endpoint(**kwargs)
    except SlackApiError as e:
        error_code = e.response.get("error") if e.response is not None else None
        log.error("slack_api_failed", method=method, error_code=error_code)
        raise SlackAPIError(method=method, error_code=error_code) from e
    return response.data if isinstance(response.data, dict) else {}


def post_thread_message(
    channel: str,
    thread_ts: str | None,
    text: str,
    *,
    blocks: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """
    Post a message into a conversation thread.

    Args:
        channel: Channel ID
        thread_ts: Thread anchor (None posts at channel level)
        text: Fallback text (also the message when no blocks are given)
        blocks: Optional Block Kit blocks

    Returns:
        chat.postMessage response

    Raises:
        SlackAPIError: If the post fails
    """
    kwargs: dict[str, Any] = {"channel": channel, "text": text}
    if thread_ts:
        kwargs["thread_ts"] = thread_ts
    if blocks:
        kwargs["blocks"] = blocks

    response = _call("chat.postMessage", **kwargs)
    log.debug("slack_message_posted", channel=channel, thread_ts=thread_ts)
    return response


def open_view(trigger_id: str, view: dict[str, Any]) -> dict[str, Any]:
    """
    Open a modal.

    Raises:
        SlackAPIError: If the view cannot be opened
    """
    response = _call("views.open", trigger_id=trigger_id, view=view)
    log.debug("slack_view_opened", callback_id=view.get("callback_id"))
    return response


def update_view(view_id: str, view: dict[str, Any]) -> dict[str, Any]:
    """
    Replace an open modal.

    Raises:
        SlackAPIError: If the view cannot be updated
    """
    response = _call("views.update", view_id=view_id, view=view)
    log.debug("slack_view_updated", callback_id=view.get("callback_id"))
    return response


def fetch_root_message(channel: str, ts: str) -> dict[str, Any] | None:
    """Fetch the message a conversation thread hangs off."""
    response = _call(
        "conversations.replies",
        channel=channel,
        ts=ts,
        inclusive=True,
        limit=1,
    )
    messages = response.get("messages") or []
    for message in messages:
        if message.get("ts") == ts:
            return message
    return messages[0] if messages else None


def fetch_file_info(file_id: str) -> dict[str, Any]:
    """Fetch full metadata of a shared file."""
    response = _call("files.info", file=file_id)
    return response.get("file") or {}


def verify_request(body: str | bytes, headers: dict[str, str]) -> bool:
    """
    Check a request's Slack signature and timestamp.

    Args:
        body: Raw request body exactly as received
        headers: Request headers (any casing)

    Returns:
        True if the request was signed with the configured signing secret
    """
    credentials = get_credentials()
    if not credentials.slack_signing_secret:
        log.error("slack_signing_secret_missing")
        return False

    verifier = SignatureVerifier(signing_secret=credentials.slack_signing_secret)
    valid = verifier.is_valid_request(body, headers)
    if not valid:
        log.warning("slack_signature_rejected")
    return valid


# --- Email metadata ---


def _email_file(files: Any) -> dict[str, Any] | None:
    if not isinstance(files, list):
        return None
    for f in files:
        if isinstance(f, dict) and f.get("mode") == "email":
            return f
    return None


def _file_subject(f: dict[str, Any]) -> str:
    headers = f.get("headers") or {}
    return str(f.get("subject") or headers.get("subject") or "").strip()


def extract_subject_from_event(event: dict[str, Any]) -> str:
    """
    Pull the email subject out of a Slack message event.

    An email file wins over legacy attachments, which win over text.

    Returns:
        Subject as posted (not normalized), or "" if none is present
    """
    email_file = _email_file(event.get("files"))
    if email_file:
        subject = _file_subject(email_file)
        if subject:
            return subject

    titles = [a.get("title") for a in event.get("attachments") or [] if a.get("title")]
    if titles:
        return str(titles[0]).strip()

    text = event.get("text")
    if text:
        first = str(text).split("\n")[0].strip()
        return SUBJECT_LINE_PATTERN.sub("", first).strip()
    return ""


def resolve_email_subject(channel: str, root_ts: str) -> str:
    """
    Recover the subject from the email file of a thread's root message.

    Falls back to files.info only when the file object in the message
    carries no subject.

    Returns:
        Subject as relayed, or "" when the root carries no email file
    """
    root = fetch_root_message(channel, root_ts)
    email_file = _email_file((root or {}).get("files"))
    if not email_file:
        return ""

    subject = _file_subject(email_file)
    if not subject and email_file.get("id"):
        subject = _file_subject(fetch_file_info(email_file["id"]))

    log.debug("email_subject_resolved", has_subject=bool(subject))
    return subject
