"""
WorkflowJobs Lambda Handler

Main entry point for deferred workflow jobs.

Trigger: EventBridge rule matching ThreadResolutionRequested and
EmailSendRequested
Output: Slack view updates, Gmail sends and Slack confirmation messages

Flow:
1. Read detail-type and detail from the EventBridge event
2. Route to the workflow controller
3. Return a summary of the outcome

The handler never raises: a failed invocation would be retried by
Lambda, and a retry after a send would send twice.
"""

import json
from typing import Any

import structlog

from mailbridge.actions.controller import dispatch_job

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


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    AWS Lambda handler for workflow jobs.

    Args:
        event: EventBridge event
        context: Lambda context

    Returns:
        Dict with statusCode and a JSON body describing the outcome
    """
    request_id = getattr(context, "aws_request_id", "local")
    detail_type = event.get("detail-type", "")
    detail = event.get("detail") or {}

    log.info(
        "workflow_job_received",
        request_id=request_id,
        detail_type=detail_type,
        event_id=event.get("id"),
    )

    result = dispatch_job(detail_type, detail)

    log.info(
        "workflow_job_processed",
        request_id=request_id,
        detail_type=detail_type,
        state=result.state.value if result.state else None,
        ignored_reason=result.ignored_reason,
    )

    return {
        "statusCode": 200,
        "body": json.dumps({
            "state": result.state.value if result.state else None,
            "ignored_reason": result.ignored_reason,
        }),
    }
