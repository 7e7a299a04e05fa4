"""
Mail Models

Pydantic models for mailbox threads, messages and their MIME part trees.
The part tree is a tagged union so that every traversal agrees on what is
a container and what is a leaf.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class PartLeaf(BaseModel):
    """
    Non-multipart MIME part.

    Text bodies carry their payload inline in `data`; binary attachments
    usually carry only an `attachment_id` that must be fetched separately.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["leaf"] = "leaf"
    part_id: str = Field(default="", description="Provider part identifier")
    mime_type: str = Field(default="", description="Declared content type")
    filename: str = Field(default="", description="Attachment filename, empty for bodies")
    data: str | None = Field(
        default=None,
        description="URL-safe base64 payload as stored by the provider",
    )
    attachment_id: str | None = Field(
        default=None,
        description="Provider attachment identifier for out-of-line payloads",
    )


class PartContainer(BaseModel):
    """multipart/* part holding an ordered list of child parts."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["container"] = "container"
    part_id: str = Field(default="", description="Provider part identifier")
    mime_type: str = Field(..., description="multipart/* content type")
    children: list["MailPart"] = Field(default_factory=list)


MailPart = Annotated[Union[PartLeaf, PartContainer], Field(discriminator="kind")]

PartContainer.model_rebuild()


class MessageRefs(BaseModel):
    """Identifiers used to thread a reply under the original message."""

    model_config = ConfigDict(frozen=True)

    in_reply_to: str | None = Field(default=None, description="Message-ID being answered")
    references: str | None = Field(default=None, description="References chain")


class MailMessage(BaseModel):
    """
    Single message of a mailbox thread, flattened from its part tree.

    `body_text` is derived from `body_html` when the message has no
    native plain-text part; both are empty only when the source had
    neither.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Provider message ID")
    thread_id: str = Field(..., description="Provider thread ID")
    subject: str = Field(default="", description="Subject header")
    email_from: str = Field(default="", description="From header, verbatim")
    email_to: str = Field(default="", description="To header, verbatim")
    reply_to: str = Field(default="", description="Reply-To header, verbatim")
    date: str = Field(default="", description="Date header, verbatim")
    body_html: str | None = Field(default=None, description="First HTML body found")
    body_text: str = Field(default="", description="First text body found, or text derived from HTML")
    refs: MessageRefs = Field(default_factory=MessageRefs)
    payload: MailPart | None = Field(
        default=None,
        description="Root of the part tree (kept for attachment extraction)",
    )


class ResolvedThread(BaseModel):
    """Thread chosen by the best-effort subject search."""

    model_config = ConfigDict(frozen=True)

    thread_id: str = Field(..., description="Provider thread ID")


class AttachmentRef(BaseModel):
    """Attachment descriptor collected from a part tree."""

    model_config = ConfigDict(frozen=True)

    attachment_id: str = Field(..., description="Provider attachment identifier")
    filename: str = Field(..., description="Original filename")
    mime_type: str = Field(default="application/octet-stream", description="Declared MIME type")


class Attachment(BaseModel):
    """Fetched attachment ready to be re-embedded in an outbound message."""

    model_config = ConfigDict(frozen=True)

    filename: str = Field(..., description="Original filename")
    mime_type: str = Field(..., description="Declared MIME type")
    data_b64: str = Field(..., description="Payload, standard base64 alphabet")
