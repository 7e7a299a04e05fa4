"""
Thread Tools

Best-effort correlation of a notification subject with a mailbox thread,
and selection of the customer message to answer within that thread.

Known limitation: the first search hit wins. There is no disambiguation
between threads that share a subject and no fallback search.
"""

from typing import Any

import structlog

from mailbridge.shared.config import get_settings
from mailbridge.shared.exceptions import ResolutionError
from mailbridge.shared.models.mail import MailMessage, ResolvedThread
from mailbridge.shared.tools import gmail
from mailbridge.shared.tools.addresses import is_shop_address, parse_address_list
from mailbridge.shared.tools.mime_reader import extract_message, header_map
from mailbridge.shared.tools.subjects import normalize_subject

log = structlog.get_logger()


def build_thread_query(
    subject_guess: str,
    shop_address: str,
    *,
    window_days: int = 60,
) -> str:
    """
    Build the mailbox search query for a subject guess.

    Only mail sent to the shop by someone else within the window is
    considered. Double quotes in the subject are escaped.

    Args:
        subject_guess: Subject as seen in the chat message
        shop_address: Shop mailbox address
        window_days: Trailing search window

    Returns:
        Gmail search query
    """
    subject = normalize_subject(subject_guess).replace('"', '\\"')
    return (
        f"to:{shop_address} newer_than:{window_days}d "
        f'-from:{shop_address} subject:"{subject}"'
    )


def find_thread_by_subject(subject_guess: str | None) -> ResolvedThread | None:
    """
    Find the mailbox thread a notification subject refers to.

    Args:
        subject_guess: Subject as seen in the chat message

    Returns:
        First matching thread, or None if the subject is blank or nothing matched

    Raises:
        GmailAPIError: If the search fails after retries
    """
    if not normalize_subject(subject_guess):
        return None

    settings = get_settings()
    query = build_thread_query(
        subject_guess or "",
        settings.shop_from_email,
        window_days=settings.thread_search_window_days,
    )

    threads = gmail.search_threads(query, max_results=settings.thread_search_max_results)

    log.info(
        "thread_search",
        subject=normalize_subject(subject_guess)[:80],
        result_count=len(threads),
    )

    if not threads:
        return None

    resolved = ResolvedThread(thread_id=threads[0]["id"])
    log.info("thread_resolved", thread_id=resolved.thread_id)
    return resolved


def select_latest_inbound(
    messages: list[dict[str, Any]],
    shop_address: str,
) -> dict[str, Any]:
    """
    Pick the newest message of a thread not sent by the shop.

    Args:
        messages: Gmail message resources, oldest first
        shop_address: Shop mailbox address

    Returns:
        Newest customer message, or the newest message if the shop sent all of them

    Raises:
        ResolutionError: If the thread has no messages
    """
    if not messages:
        raise ResolutionError("Thread has no messages")

    for message in reversed(messages):
        sender = header_map(message.get("payload")).get("from", "")
        if not is_shop_address(sender, shop_address):
            return message
    return messages[-1]


def get_latest_inbound_in_thread(thread_id: str) -> MailMessage:
    """
    Fetch a thread and decode its latest customer message.

    Raises:
        ResolutionError: If the thread has no messages
        GmailAPIError: If the fetch fails after retries
    """
    settings = get_settings()
    messages = gmail.get_thread_messages(thread_id)
    if not messages:
        raise ResolutionError("Thread has no messages", thread_id=thread_id)

    latest = extract_message(select_latest_inbound(messages, settings.shop_from_email))

    log.info(
        "latest_inbound_selected",
        thread_id=thread_id,
        message_id=latest.id,
        thread_size=len(messages),
    )
    return latest


def resolve_reply_recipient(message: MailMessage, shop_address: str) -> str:
    """
    Choose the customer address a reply goes to.

    Reply-To wins over From; the shop's own address is never chosen.

    Returns:
        Recipient address, or "" if none qualifies
    """
    shop = shop_address.lower()
    for header_value in (message.reply_to, message.email_from):
        for address in parse_address_list(header_value):
            if address != shop:
                return address
    return ""
