"""
MIME Reader

Decodes mailbox messages into flat MailMessage records.

Message structure is modelled as a tree of PartContainer/PartLeaf nodes.
Trees are built either from a Gmail API `format=full` payload or from a
raw RFC-822 message, and every consumer walks them with `walk_leaves`,
so body extraction and attachment collection see leaves in the same
depth-first, left-first order.
"""

import base64
import binascii
import email
import re
from dataclasses import dataclass
from email.message import Message
from email.policy import compat32
from typing import Any, Callable, TypeVar

import structlog

from mailbridge.shared.models.mail import (
    MailMessage,
    MailPart,
    MessageRefs,
    PartContainer,
    PartLeaf,
)

log = structlog.get_logger()

T = TypeVar("T")

TEXT_PLAIN = "text/plain"
TEXT_HTML = "text/html"


@dataclass(frozen=True)
class MessageBodies:
    """First HTML and first plain-text body found in a part tree."""

    html: str | None = None
    text: str | None = None


def _is_container(mime_type: str) -> bool:
    return mime_type.lower().startswith("multipart/")


# --- Tree construction ---


def parse_part_tree(payload: dict[str, Any] | None) -> MailPart:
    """
    Build a part tree from a Gmail API message payload.

    Only multipart/* parts become containers. Other parts that nest
    sub-parts (message/rfc822) are kept as leaves so an attached email
    is forwarded as one attachment.

    Args:
        payload: The `payload` object of a Gmail message (format=full)

    Returns:
        Root of the part tree
    """
    payload = payload or {}
    mime_type = payload.get("mimeType") or ""
    part_id = payload.get("partId") or ""

    if _is_container(mime_type):
        return PartContainer(
            part_id=part_id,
            mime_type=mime_type,
            children=[parse_part_tree(p) for p in payload.get("parts") or []],
        )

    body = payload.get("body") or {}
    return PartLeaf(
        part_id=part_id,
        mime_type=mime_type,
        filename=payload.get("filename") or "",
        data=body.get("data") or None,
        attachment_id=body.get("attachmentId") or None,
    )


def _part_from_email(part: Message, part_id: str) -> MailPart:
    mime_type = part.get_content_type()
    if _is_container(mime_type):
        children = part.get_payload() if part.is_multipart() else []
        return PartContainer(
            part_id=part_id,
            mime_type=mime_type,
            children=[
                _part_from_email(child, f"{part_id}.{i}" if part_id else str(i))
                for i, child in enumerate(children)
            ],
        )

    if part.is_multipart():
        # message/rfc822: the nested message is one opaque leaf
        payload = b"".join(inner.as_bytes() for inner in part.get_payload())
    else:
        payload = part.get_payload(decode=True) or b""
    return PartLeaf(
        part_id=part_id,
        mime_type=mime_type,
        filename=part.get_filename() or "",
        data=base64.urlsafe_b64encode(payload).decode("ascii") if payload else None,
    )


def part_tree_from_raw(raw_email: str | bytes) -> MailPart:
    """
    Build a part tree from a raw RFC-822 message.

    Leaf payloads are transfer-decoded and stored URL-safe base64
    encoded, the same way the Gmail API stores them.

    Args:
        raw_email: Raw message as string or bytes

    Returns:
        Root of the part tree
    """
    raw_bytes = raw_email.encode("utf-8") if isinstance(raw_email, str) else raw_email
    msg = email.message_from_bytes(raw_bytes, policy=compat32)
    return _part_from_email(msg, "")


# --- Traversal ---


def walk_leaves(root: MailPart | None, visitor: Callable[[PartLeaf], T | None]) -> list[T]:
    """
    Depth-first, left-first traversal of a part tree.

    Containers are always descended into, never visited. Every non-None
    value returned by the visitor is collected in traversal order.

    Args:
        root: Root of the part tree (None yields nothing)
        visitor: Called once per leaf

    Returns:
        Collected visitor results
    """
    results: list[T] = []
    if root is None:
        return results

    stack: list[MailPart] = [root]
    while stack:
        part = stack.pop()
        if isinstance(part, PartContainer):
            stack.extend(reversed(part.children))
            continue
        result = visitor(part)
        if result is not None:
            results.append(result)
    return results


# --- Decoding ---


def decode_b64url(data: str | None) -> str | None:
    """
    Decode a URL-safe base64 payload to UTF-8 text.

    Padding is optional. Invalid UTF-8 sequences are replaced; a payload
    that is not valid base64 is treated as unavailable.

    Args:
        data: URL-safe base64 string

    Returns:
        Decoded text, or None if the payload is absent or malformed
    """
    if not data:
        return None
    try:
        raw = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
    except (binascii.Error, ValueError) as e:
        log.warning("body_decode_failed", error=str(e), length=len(data))
        return None
    return raw.decode("utf-8", errors="replace")


def html_to_text(html: str | None) -> str | None:
    """Collapse HTML to plain text: paragraphs and line breaks become newlines."""
    if not html:
        return None
    text = re.sub(r"</p>", "\n\n", html, flags=re.IGNORECASE)
    text = re.sub(r"<br\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    return text.strip()


def _body_of(leaf: PartLeaf) -> tuple[str, str] | None:
    mime_type = leaf.mime_type.lower()
    if mime_type not in (TEXT_PLAIN, TEXT_HTML):
        return None
    decoded = decode_b64url(leaf.data)
    if not decoded:
        return None
    return mime_type, decoded


def extract_bodies(root: MailPart | None) -> MessageBodies:
    """
    Find the first non-empty HTML and plain-text bodies of a message.

    Every leaf is visited; a body found earlier is never replaced by a
    later one. Leaves of any other type (attachments, inline images)
    contribute nothing.

    Args:
        root: Root of the part tree

    Returns:
        MessageBodies with html and/or text set
    """
    html: str | None = None
    text: str | None = None
    for mime_type, decoded in walk_leaves(root, _body_of):
        if mime_type == TEXT_HTML:
            html = html or decoded
        else:
            text = text or decoded
    return MessageBodies(html=html, text=text)


# --- Messages ---


def header_map(payload: dict[str, Any] | None) -> dict[str, str]:
    """Lower-cased header name -> value (last occurrence wins)."""
    headers = (payload or {}).get("headers") or []
    return {
        str(h.get("name", "")).lower(): str(h.get("value", ""))
        for h in headers
        if h.get("name")
    }


def _build_refs(headers: dict[str, str]) -> MessageRefs:
    message_id = headers.get("message-id", "").strip()
    if not message_id:
        return MessageRefs()
    chain = headers.get("references", "").split()
    if message_id not in chain:
        chain.append(message_id)
    return MessageRefs(in_reply_to=message_id, references=" ".join(chain))


def extract_message(message: dict[str, Any]) -> MailMessage:
    """
    Flatten a Gmail API message (format=full) into a MailMessage.

    Args:
        message: Message resource from threads.get or messages.get

    Returns:
        MailMessage with headers, bodies, reference ids and part tree
    """
    payload = message.get("payload") or {}
    headers = header_map(payload)
    root = parse_part_tree(payload)
    bodies = extract_bodies(root)

    body_text = bodies.text or html_to_text(bodies.html) or ""

    log.debug(
        "message_extracted",
        message_id=message.get("id"),
        has_html=bodies.html is not None,
        has_text=bodies.text is not None,
    )

    return MailMessage(
        id=message.get("id") or "",
        thread_id=message.get("threadId") or "",
        subject=headers.get("subject", ""),
        email_from=headers.get("from", ""),
        email_to=headers.get("to", ""),
        reply_to=headers.get("reply-to", ""),
        date=headers.get("date", ""),
        body_html=bodies.html,
        body_text=body_text,
        refs=_build_refs(headers),
        payload=root,
    )
