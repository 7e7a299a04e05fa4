"""
Subject Tools

Normalization and classification of order-notification subject lines.
"""

import re
from dataclasses import dataclass
from typing import Final

import structlog

log = structlog.get_logger()

# Leading "Re:", "Fw:" or "Fwd:" marker plus following whitespace
REPLY_FORWARD_PREFIX: Final = re.compile(r"^(?:re:|fwd?:)\s*", re.IGNORECASE)

# Recognized shop notification subjects, matched after normalization
SUBJECT_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"^Your order is confirmed - no further action needed!$", re.IGNORECASE),
    re.compile(r"^Refund notification$", re.IGNORECASE),
    re.compile(r"^A shipment from order C#\d{3,6} is out for delivery$", re.IGNORECASE),
    re.compile(r"^A shipment from order C#\d{3,6} has been delivered$", re.IGNORECASE),
    re.compile(r"^A shipment from order C#\d{3,6} is on the way$", re.IGNORECASE),
    re.compile(r"^Order confirmed, no further action needed!$", re.IGNORECASE),
    re.compile(r"^URGENT - COULD NOT PROCESS PAYMENT$", re.IGNORECASE),
    re.compile(r"^Welcome to the Carismo family!$", re.IGNORECASE),
    re.compile(r"^Your Carismo order is ready for pickup$", re.IGNORECASE),
    re.compile(r"^Your order has been picked up$", re.IGNORECASE),
    re.compile(r"^Carismo \$\d+(?:\.\d{2})? store credit$", re.IGNORECASE),
    re.compile(r"^Order #\d{3,6} has been canceled$", re.IGNORECASE),
)


@dataclass(frozen=True)
class SubjectClassification:
    """Outcome of testing a subject against the notification patterns."""

    matched: bool
    normalized: str


def normalize_subject(subject: str | None) -> str:
    """
    Strip any number of leading reply/forward markers.

    "Fwd: Re: Fwd: Refund notification" -> "Refund notification".
    Applying it twice gives the same result as applying it once.

    Args:
        subject: Raw subject line (may be None or empty)

    Returns:
        Trimmed subject without reply/forward markers
    """
    out = str(subject or "").strip()
    while REPLY_FORWARD_PREFIX.match(out):
        out = REPLY_FORWARD_PREFIX.sub("", out, count=1)
    return out.strip()


def classify_subject(subject: str | None) -> SubjectClassification:
    """
    Decide whether a subject is a recognized order notification.

    Any single pattern match is enough; blank subjects never match.

    Args:
        subject: Raw subject line

    Returns:
        SubjectClassification with the match flag and normalized subject
    """
    normalized = normalize_subject(subject)
    if not normalized:
        return SubjectClassification(matched=False, normalized="")

    matched = any(pattern.match(normalized) for pattern in SUBJECT_PATTERNS)

    log.debug(
        "subject_classified",
        subject=normalized[:80],
        matched=matched,
    )

    return SubjectClassification(matched=matched, normalized=normalized)


def has_prefix(subject: str, prefix: str) -> bool:
    """Case-insensitive check for a "Re:"/"Fwd:" style prefix."""
    return subject.lower().startswith(prefix.lower())


def ensure_prefix(subject: str, prefix: str) -> str:
    """
    Prefix a subject with "Re:" or "Fwd:" unless it already starts with it.

    Args:
        subject: Subject line
        prefix: Marker including the colon, e.g. "Re:"

    Returns:
        Subject carrying the marker exactly once at the front
    """
    subject = (subject or "").strip()
    if has_prefix(subject, prefix):
        return subject
    return f"{prefix} {subject}".strip()
