"""
Attachment Tools

Collects attachment descriptors from a message part tree and fetches
their payloads for re-embedding in a forward.
"""

import base64

import structlog

from mailbridge.shared.models.mail import Attachment, AttachmentRef, MailMessage, MailPart, PartLeaf
from mailbridge.shared.tools import gmail
from mailbridge.shared.tools.mime_reader import walk_leaves

log = structlog.get_logger()

DEFAULT_MIME_TYPE = "application/octet-stream"


def _attachment_ref(leaf: PartLeaf) -> AttachmentRef | None:
    if not leaf.filename or not leaf.attachment_id:
        return None
    return AttachmentRef(
        attachment_id=leaf.attachment_id,
        filename=leaf.filename,
        mime_type=leaf.mime_type or DEFAULT_MIME_TYPE,
    )


def collect_attachment_refs(root: MailPart | None) -> list[AttachmentRef]:
    """
    Collect every leaf carrying both a filename and an attachment ID.

    Inline bodies (no filename) and parts whose payload is stored inline
    (no attachment ID) are skipped.
    """
    return walk_leaves(root, _attachment_ref)


def urlsafe_to_standard_b64(data: str) -> str:
    """Re-encode a URL-safe base64 payload in the standard alphabet, padded."""
    padded = data + "=" * (-len(data) % 4)
    return base64.b64encode(base64.urlsafe_b64decode(padded)).decode("ascii")


def fetch_attachments(message: MailMessage) -> list[Attachment]:
    """
    Fetch the payload of every attachment of a message.

    Fetches are sequential, one call per attachment, in part-tree order.

    Args:
        message: Decoded message (its part tree is walked)

    Returns:
        Attachments with standard-alphabet base64 payloads

    Raises:
        GmailAPIError: If any fetch fails
    """
    refs = collect_attachment_refs(message.payload)
    attachments: list[Attachment] = []

    for ref in refs:
        data = gmail.get_attachment(message.id, ref.attachment_id)
        attachments.append(
            Attachment(
                filename=ref.filename,
                mime_type=ref.mime_type,
                data_b64=urlsafe_to_standard_b64(data),
            )
        )

    log.info(
        "attachments_fetched",
        message_id=message.id,
        count=len(attachments),
    )
    return attachments
