"""
SlackInteractions Lambda Handler

Main entry point for Slack interactivity requests.

Trigger: API Gateway proxy integration (POST /slack/interactions)
Output: Modal updates, field errors or `clear` in the HTTP response;
loading modals and queued workflow jobs as side effects

Flow:
1. Decode the request body and verify the Slack signature
2. Parse the form-encoded `payload` field
3. Route to the workflow controller
4. Return any `response_action` body to Slack
"""

import json
from typing import Any
from urllib.parse import parse_qs

import structlog

from mailbridge.actions.controller import dispatch_interaction
from mailbridge.shared.exceptions import CredentialsError
from mailbridge.shared.tools.gateway import build_response, get_headers, get_raw_body
from mailbridge.shared.tools.slack import verify_request

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

log = structlog.get_logger()


def parse_interaction_payload(raw_body: str) -> dict[str, Any]:
    """
    Extract the JSON `payload` field of a form-encoded interaction body.

    Raises:
        ValueError: If the field is missing or is not a JSON object
    """
    values = parse_qs(raw_body).get("payload")
    if not values:
        raise ValueError("Missing payload field")
    try:
        payload = json.loads(values[0])
    except json.JSONDecodeError as e:
        raise ValueError(f"Payload is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ValueError("Payload must be a JSON object")
    return payload


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    AWS Lambda handler for Slack interactivity callbacks.

    Args:
        event: API Gateway proxy event
        context: Lambda context

    Returns:
        Proxy response; the body carries a response_action when the
        open modal must show errors or be replaced
    """
    request_id = getattr(context, "aws_request_id", "local")

    try:
        raw_body = get_raw_body(event)
    except ValueError as e:
        log.error("request_body_undecodable", request_id=request_id, error=str(e))
        return build_response(400, {"error": "Undecodable body"})

    try:
        verified = verify_request(raw_body, get_headers(event))
    except CredentialsError as e:
        log.error("signing_secret_unavailable", request_id=request_id, error=str(e))
        return build_response(500, {"error": "Server misconfigured"})
    if not verified:
        return build_response(401, {"error": "Invalid signature"})

    try:
        payload = parse_interaction_payload(raw_body)
    except ValueError as e:
        log.error("interaction_payload_invalid", request_id=request_id, error=str(e))
        return build_response(400, {"error": "Invalid payload"})

    log.info(
        "slack_interaction_received",
        request_id=request_id,
        payload_type=payload.get("type"),
        user_id=(payload.get("user") or {}).get("id"),
    )

    result = dispatch_interaction(payload)

    log.info(
        "slack_interaction_processed",
        request_id=request_id,
        state=result.state.value if result.state else None,
        ignored_reason=result.ignored_reason,
        has_response=result.response is not None,
    )

    if result.response is not None:
        return build_response(200, result.response)
    return build_response(200)
