"""
API Gateway Tools

Helpers for Lambda proxy integration events: body decoding, header
normalization and response building.
"""

import base64
import binascii
import json
from typing import Any


def get_raw_body(event: dict[str, Any]) -> str:
    """
    Return the request body exactly as Slack sent it.

    Raises:
        ValueError: If a base64-encoded body cannot be decoded
    """
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(body).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ValueError(f"Undecodable request body: {e}") from e
    return body


def get_headers(event: dict[str, Any]) -> dict[str, str]:
    """Lower-cased request headers."""
    headers = event.get("headers") or {}
    return {str(k).lower(): str(v) for k, v in headers.items() if v is not None}


def build_response(
    status_code: int,
    body: dict[str, Any] | str | None = None,
) -> dict[str, Any]:
    """Build a proxy integration response; dict bodies are sent as JSON."""
    if isinstance(body, dict):
        return {
            "statusCode": status_code,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps(body),
        }
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "text/plain"},
        "body": body or "",
    }
