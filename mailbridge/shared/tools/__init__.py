# Shared Tools
"""
Tool implementations for the bridge.

Pure tools (subjects, addresses, MIME reading and writing) have no I/O.
Gmail, Slack, EventBridge and Secrets Manager tools each obtain their
client through a module-level getter so tests can patch it.
"""

from mailbridge.shared.tools.addresses import (
    is_shop_address,
    parse_address_list,
)
from mailbridge.shared.tools.attachments import (
    collect_attachment_refs,
    fetch_attachments,
)
from mailbridge.shared.tools.mime_reader import (
    MessageBodies,
    decode_b64url,
    extract_bodies,
    extract_message,
    html_to_text,
    parse_part_tree,
    part_tree_from_raw,
    walk_leaves,
)
from mailbridge.shared.tools.mime_writer import (
    build_forward_raw,
    build_reply_raw,
)
from mailbridge.shared.tools.subjects import (
    SUBJECT_PATTERNS,
    SubjectClassification,
    classify_subject,
    ensure_prefix,
    normalize_subject,
)
from mailbridge.shared.tools.threads import (
    build_thread_query,
    find_thread_by_subject,
    get_latest_inbound_in_thread,
    resolve_reply_recipient,
    select_latest_inbound,
)

__all__ = [
    # Subjects
    "SUBJECT_PATTERNS",
    "SubjectClassification",
    "classify_subject",
    "ensure_prefix",
    "normalize_subject",
    # Addresses
    "is_shop_address",
    "parse_address_list",
    # MIME reader
    "MessageBodies",
    "decode_b64url",
    "extract_bodies",
    "extract_message",
    "html_to_text",
    "parse_part_tree",
    "part_tree_from_raw",
    "walk_leaves",
    # MIME writer
    "build_forward_raw",
    "build_reply_raw",
    # Threads
    "build_thread_query",
    "find_thread_by_subject",
    "get_latest_inbound_in_thread",
    "resolve_reply_recipient",
    "select_latest_inbound",
    # Attachments
    "collect_attachment_refs",
    "fetch_attachments",
]
