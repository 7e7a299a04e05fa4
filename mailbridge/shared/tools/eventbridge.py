"""
EventBridge Tools

Publishes workflow job events to EventBridge. A rule on the bus routes
them to the workflow jobs Lambda.
"""

import json

import boto3
from botocore.exceptions import ClientError
import structlog

from mailbridge.shared.config import get_settings
from mailbridge.shared.exceptions import EventPublishError
from mailbridge.shared.models.events import BaseJobEvent

log = structlog.get_logger()


def _get_client():
    """Get EventBridge client."""
    settings = get_settings()
    return boto3.client("events", **settings.eventbridge_config)


def send_event(event: BaseJobEvent) -> str:
    """
    Publish a single job event to EventBridge.

    Args:
        event: Job event to publish

    Returns:
        EventBridge event ID

    Raises:
        EventPublishError: If publication fails
    """
    settings = get_settings()
    client = _get_client()
    detail_type = event.detail_type()

    log.info(
        "publishing_event",
        detail_type=detail_type,
        source=settings.eventbridge_source,
    )

    try:
        response = client.put_events(
            Entries=[
                {
                    "EventBusName": settings.eventbridge_bus_name,
                    "Source": settings.eventbridge_source,
                    "DetailType": detail_type,
                    "Detail": json.dumps(event.to_eventbridge_detail()),
                }
            ]
        )
    except ClientError as e:
        log.error("eventbridge_put_failed", detail_type=detail_type, error=str(e))
        raise EventPublishError(
            event_type=detail_type,
            error_code=e.response["Error"]["Code"],
            error_message=e.response["Error"]["Message"],
        ) from e

    if response.get("FailedEntryCount", 0) > 0:
        failed = response["Entries"][0]
        log.error(
            "eventbridge_entry_failed",
            detail_type=detail_type,
            error_code=failed.get("ErrorCode"),
        )
        raise EventPublishError(
            event_type=detail_type,
            error_code=failed.get("ErrorCode"),
            error_message=failed.get("ErrorMessage"),
        )

    event_id = response["Entries"][0]["EventId"]
    log.info("event_published", detail_type=detail_type, event_id=event_id)
    return event_id
