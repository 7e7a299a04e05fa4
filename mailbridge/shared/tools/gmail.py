"""
Gmail Tools

Thin wrappers over the four Gmail API v1 calls the bridge needs.

Thread search and thread fetch are idempotent reads and are retried on
transient HTTP statuses. Attachment fetch and send are not retried.
"""

from functools import lru_cache
from typing import Any

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
import structlog
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from mailbridge.shared.config import get_settings
from mailbridge.shared.exceptions import DeliveryError, GmailAPIError
from mailbridge.shared.tools.secrets import get_credentials

log = structlog.get_logger()

GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
]

TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})


@lru_cache(maxsize=1)
def _get_service():
    """Get Gmail API service for the shop mailbox."""
    settings = get_settings()
    credentials = get_credentials()
    credentials.require("gmail_client_id", "gmail_client_secret", "gmail_refresh_token")

    creds = Credentials(
        token=None,
        refresh_token=credentials.gmail_refresh_token,
        token_uri=settings.gmail_token_uri,
        client_id=credentials.gmail_client_id,
        client_secret=credentials.gmail_client_secret,
        scopes=GMAIL_SCOPES,
    )
    return build("gmail", "v1", credentials=creds, cache_discovery=False)


def _status_of(error: HttpError) -> int | None:
    status = getattr(error.resp, "status", None)
    return int(status) if status is not None else None


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, GmailAPIError) and error.status_code in TRANSIENT_STATUSES


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, max=4),
    retry=retry_if_exception(_is_transient),
    reraise=True,
)
def _execute_read(request: Any, operation: str) -> dict[str, Any]:
    """Execute an idempotent Gmail request, mapping HttpError to GmailAPIError."""
    try:
        return request.execute()
    except HttpError as e:
        status_code = _status_of(e)
        log.warning(
            "gmail_read_failed",
            operation=operation,
            status_code=status_code,
        )
        raise GmailAPIError(
            operation=operation,
            status_code=status_code,
            error_message=str(e),
        ) from e


def search_threads(query: str, *, max_results: int | None = None) -> list[dict[str, Any]]:
    """
    Search the mailbox for threads.

    Args:
        query: Gmail search query
        max_results: Page size (default: from settings)

    Returns:
        Thread stubs ({"id", "snippet", ...}) in the mailbox's native ranking

    Raises:
        GmailAPIError: If the search fails after retries
    """
    settings = get_settings()
    service = _get_service()

    request = service.users().threads().list(
        userId=settings.gmail_user_id,
        q=query,
        maxResults=max_results or settings.thread_search_max_results,
    )
    response = _execute_read(request, "threads.list")
    return response.get("threads") or []


def get_thread_messages(thread_id: str) -> list[dict[str, Any]]:
    """
    Fetch every message of a thread in full format, oldest first.

    Raises:
        GmailAPIError: If the fetch fails after retries
    """
    settings = get_settings()
    service = _get_service()

    request = service.users().threads().get(
        userId=settings.gmail_user_id,
        id=thread_id,
        format="full",
    )
    response = _execute_read(request, "threads.get")
    return response.get("messages") or []


def get_attachment(message_id: str, attachment_id: str) -> str:
    """
    Fetch one attachment payload.

    Args:
        message_id: Message carrying the attachment
        attachment_id: Provider attachment identifier

    Returns:
        URL-safe base64 payload

    Raises:
        GmailAPIError: If the fetch fails
    """
    settings = get_settings()
    service = _get_service()

    try:
        response = service.users().messages().attachments().get(
            userId=settings.gmail_user_id,
            messageId=message_id,
            id=attachment_id,
        ).execute()
    except HttpError as e:
        log.error(
            "attachment_fetch_failed",
            message_id=message_id,
            attachment_id=attachment_id,
            status_code=_status_of(e),
        )
        raise GmailAPIError(
            operation="attachments.get",
            status_code=_status_of(e),
            error_message=str(e),
        ) from e

    return response.get("data") or ""


def send_raw_message(
    raw: str,
    *,
    operation: str,
    recipient: str,
    thread_id: str | None = None,
) -> str:
    """
    Submit a base64url-encoded RFC-822 message.

    Args:
        raw: Encoded envelope
        operation: "reply" or "forward" (used in errors and logs)
        recipient: Recipient address(es) for error context
        thread_id: Thread to file the message under (replies only)

    Returns:
        Provider message ID of the sent message

    Raises:
        DeliveryError: If the send call fails
    """
    settings = get_settings()
    service = _get_service()

    body: dict[str, Any] = {"raw": raw}
    if thread_id:
        body["threadId"] = thread_id

    try:
        response = service.users().messages().send(
            userId=settings.gmail_user_id,
            body=body,
        ).execute()
    except HttpError as e:
        log.error(
            "gmail_send_failed",
            operation=operation,
            thread_id=thread_id,
            status_code=_status_of(e),
        )
        raise DeliveryError(
            operation=operation,
            recipient=recipient,
            error_message=str(e),
        ) from e

    message_id = response.get("id", "")
    log.info(
        "gmail_message_sent",
        operation=operation,
        message_id=message_id,
        thread_id=thread_id,
    )
    return message_id
