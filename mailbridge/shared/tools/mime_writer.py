"""
MIME Writer

Builds outbound reply and forward envelopes and encodes them for the
Gmail `messages.send` call.

Replies are multipart/alternative (text, then HTML). Forwards are
multipart/mixed holding one multipart/alternative block followed by the
original attachments. Boundaries come from the stdlib generator and are
random per message.
"""

import base64
import re
import textwrap
from email.header import Header
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.message import Message

import structlog

from mailbridge.shared.models.mail import Attachment
from mailbridge.shared.tools.subjects import ensure_prefix

log = structlog.get_logger()

REPLY_PREFIX = "Re:"
FORWARD_PREFIX = "Fwd:"

DEFAULT_MIME_TYPE = "application/octet-stream"
MIME_TYPE_PATTERN = re.compile(r"^[\w.+-]+/[\w.+-]+$")
HEADER_BREAKS = re.compile(r"[\r\n]+")
BASE64_LINE_LENGTH = 76

__all__ = [
    "b64url_encode",
    "build_forward_raw",
    "build_reply_raw",
    "ensure_prefix",
    "sanitize_header",
]


def sanitize_header(value: str | None) -> str:
    """Remove CR/LF so a value cannot inject extra headers."""
    return HEADER_BREAKS.sub("", value or "")


def _set_header(msg: Message, name: str, value: str | None) -> None:
    clean = sanitize_header(value)
    if clean.isascii():
        msg[name] = clean
    else:
        msg[name] = Header(clean, "utf-8")


def _alternative(text_body: str, html_body: str) -> MIMEMultipart:
    alt = MIMEMultipart("alternative")
    alt.attach(MIMEText(text_body or "", "plain", "utf-8"))
    alt.attach(MIMEText(html_body or "", "html", "utf-8"))
    return alt


def _safe_filename(filename: str) -> str:
    return sanitize_header(filename).replace('"', "").replace("'", "") or "attachment"


def _param(value: str) -> str | tuple[str, str, str]:
    # Non-ASCII parameters are written in RFC 2231 form
    return value if value.isascii() else ("utf-8", "", value)


def _attachment_part(attachment: Attachment) -> MIMEBase:
    mime_type = attachment.mime_type.strip().lower()
    if not MIME_TYPE_PATTERN.match(mime_type):
        mime_type = DEFAULT_MIME_TYPE
    maintype, subtype = mime_type.split("/", 1)
    filename = _safe_filename(attachment.filename)

    part = MIMEBase(maintype, subtype, name=_param(filename))
    part.set_payload(
        "\n".join(textwrap.wrap(attachment.data_b64, BASE64_LINE_LENGTH)) + "\n"
    )
    part["Content-Transfer-Encoding"] = "base64"
    part.add_header("Content-Disposition", "attachment", filename=_param(filename))
    return part


def b64url_encode(msg: Message) -> str:
    """Serialize a message and encode it as unpadded URL-safe base64."""
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii").rstrip("=")


def build_reply_raw(
    from_address: str,
    to_address: str,
    subject: str,
    text_body: str,
    html_body: str,
    *,
    in_reply_to: str | None = None,
    references: str | None = None,
) -> str:
    """
    Build an encoded reply envelope.

    Args:
        from_address: Shop mailbox address
        to_address: Customer address
        subject: Original subject ("Re:" is added unless present)
        text_body: Plain-text body
        html_body: HTML body
        in_reply_to: Message-ID being answered
        references: References chain ending with that Message-ID

    Returns:
        URL-safe base64 RFC-822 envelope
    """
    msg = _alternative(text_body, html_body)
    _set_header(msg, "From", from_address)
    _set_header(msg, "To", to_address)
    _set_header(msg, "Subject", ensure_prefix(sanitize_header(subject), REPLY_PREFIX))
    if in_reply_to:
        _set_header(msg, "In-Reply-To", in_reply_to)
    if references:
        _set_header(msg, "References", references)

    log.debug("reply_envelope_built", has_in_reply_to=bool(in_reply_to))
    return b64url_encode(msg)


def build_forward_raw(
    from_address: str,
    to_addresses: list[str],
    subject: str,
    text_body: str,
    html_body: str,
    attachments: list[Attachment] | None = None,
) -> str:
    """
    Build an encoded forward envelope.

    Attachments follow the body block in the order given, each base64
    encoded under its original filename.

    Args:
        from_address: Shop mailbox address
        to_addresses: Forward recipients
        subject: Original subject ("Fwd:" is added unless present)
        text_body: Plain-text body
        html_body: HTML body
        attachments: Fetched attachments of the original message

    Returns:
        URL-safe base64 RFC-822 envelope
    """
    attachments = attachments or []

    msg = MIMEMultipart("mixed")
    _set_header(msg, "From", from_address)
    _set_header(msg, "To", ", ".join(to_addresses))
    _set_header(msg, "Subject", ensure_prefix(sanitize_header(subject), FORWARD_PREFIX))

    msg.attach(_alternative(text_body, html_body))
    for attachment in attachments:
        msg.attach(_attachment_part(attachment))

    log.debug("forward_envelope_built", attachment_count=len(attachments))
    return b64url_encode(msg)
