# Shared Models
"""
Pydantic models for mail messages, part trees, workflow correlation and
deferred job events.
"""

from mailbridge.shared.models.correlation import (
    MAX_METADATA_LENGTH,
    CorrelationState,
)
from mailbridge.shared.models.events import (
    JOB_EVENT_TYPES,
    BaseJobEvent,
    EmailSendRequestedEvent,
    ThreadResolutionRequestedEvent,
)
from mailbridge.shared.models.mail import (
    Attachment,
    AttachmentRef,
    MailMessage,
    MailPart,
    MessageRefs,
    PartContainer,
    PartLeaf,
    ResolvedThread,
)

__all__ = [
    # Mail
    "Attachment",
    "AttachmentRef",
    "MailMessage",
    "MailPart",
    "MessageRefs",
    "PartContainer",
    "PartLeaf",
    "ResolvedThread",
    # Correlation
    "CorrelationState",
    "MAX_METADATA_LENGTH",
    # Job events
    "BaseJobEvent",
    "EmailSendRequestedEvent",
    "JOB_EVENT_TYPES",
    "ThreadResolutionRequestedEvent",
]
