"""
SlackEvents Lambda Handler

Main entry point for Slack Events API requests.

Trigger: API Gateway proxy integration (POST /slack/events)
Output: Reply/Forward action prompt posted in the message's thread

Flow:
1. Decode the request body and verify the Slack signature
2. Answer url_verification challenges
3. Acknowledge Slack redeliveries without reprocessing
4. Route message events to the workflow controller
"""

import json
from typing import Any

import structlog

from mailbridge.actions.controller import dispatch_event
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

RETRY_HEADER = "x-slack-retry-num"


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    AWS Lambda handler for Slack Events API callbacks.

    Args:
        event: API Gateway proxy event
        context: Lambda context

    Returns:
        Proxy response; 200 for every verified request Slack should not redeliver
    """
    request_id = getattr(context, "aws_request_id", "local")

    try:
        raw_body = get_raw_body(event)
    except ValueError as e:
        log.error("request_body_undecodable", request_id=request_id, error=str(e))
        return build_response(400, {"error": "Undecodable body"})

    headers = get_headers(event)
    try:
        verified = verify_request(raw_body, headers)
    except CredentialsError as e:
        log.error("signing_secret_unavailable", request_id=request_id, error=str(e))
        return build_response(500, {"error": "Server misconfigured"})
    if not verified:
        return build_response(401, {"error": "Invalid signature"})

    try:
        body = json.loads(raw_body)
    except json.JSONDecodeError as e:
        log.error("request_body_invalid_json", request_id=request_id, error=str(e))
        return build_response(400, {"error": "Invalid JSON body"})

    if not isinstance(body, dict):
        return build_response(400, {"error": "Invalid JSON body"})

    callback_type = body.get("type")

    if callback_type == "url_verification":
        log.info("url_verification", request_id=request_id)
        return build_response(200, {"challenge": body.get("challenge", "")})

    if headers.get(RETRY_HEADER):
        log.info(
            "slack_retry_ignored",
            request_id=request_id,
            retry_num=headers.get(RETRY_HEADER),
            retry_reason=headers.get("x-slack-retry-reason"),
        )
        return build_response(200)

    if callback_type != "event_callback":
        log.info("callback_ignored", request_id=request_id, callback_type=callback_type)
        return build_response(200)

    inner = body.get("event") or {}
    log.info(
        "slack_event_received",
        request_id=request_id,
        event_id=body.get("event_id"),
        event_type=inner.get("type"),
    )

    result = dispatch_event(inner)
    log.info(
        "slack_event_processed",
        request_id=request_id,
        state=result.state.value if result.state else None,
        ignored_reason=result.ignored_reason,
    )
    return build_response(200)
