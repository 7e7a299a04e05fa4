"""
FastAPI Server for Local Development

Exposes the two Slack Lambda handlers over HTTP so a Slack app can be
pointed at a tunnel to this machine. Each request is converted into an
API Gateway proxy event and handed to the handler in-process.

EventBridge is replaced by an in-process queue: job events published
while handling an interaction are run through the workflow jobs handler
after the response has been sent, as EventBridge would deliver them.

Usage:
    python -m scripts.local_slack_server
    # then set the Slack app's Event Subscriptions URL to
    #   https://<tunnel>/slack/events
    # and its Interactivity Request URL to
    #   https://<tunnel>/slack/interactions
"""

import os
from types import SimpleNamespace
from typing import Any
from uuid import uuid4

# Set environment for local mode BEFORE any other imports
os.environ.setdefault("MAILBRIDGE_ENVIRONMENT", "development")

from fastapi import BackgroundTasks, FastAPI, Request, Response

from lambdas.slack_events.handler import lambda_handler as events_handler
from lambdas.slack_interactions.handler import lambda_handler as interactions_handler
from lambdas.workflow_jobs.handler import lambda_handler as jobs_handler
from mailbridge.shared.config import get_settings
from mailbridge.shared.models.events import BaseJobEvent
from mailbridge.shared.tools import eventbridge

import structlog

# Handler modules configure JSON logging on import; switch to console output
structlog.configure(
    processors=[
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

log = structlog.get_logger()

get_settings.cache_clear()

app = FastAPI(
    title="Order Mail Bridge",
    description="Local development server for the Slack/Gmail order mail bridge",
)


async def to_proxy_event(request: Request) -> dict[str, Any]:
    """Convert an HTTP request into an API Gateway proxy event."""
    body = await request.body()
    return {
        "httpMethod": request.method,
        "path": request.url.path,
        "headers": dict(request.headers),
        "body": body.decode("utf-8", errors="replace"),
        "isBase64Encoded": False,
        "requestContext": {"requestId": str(uuid4())},
    }


def to_response(result: dict[str, Any]) -> Response:
    """Convert a proxy integration response into an HTTP response."""
    headers = result.get("headers") or {}
    return Response(
        content=result.get("body") or "",
        status_code=result.get("statusCode", 200),
        media_type=headers.get("Content-Type", "text/plain"),
    )


def _context(event: dict[str, Any]) -> SimpleNamespace:
    return SimpleNamespace(aws_request_id=event["requestContext"]["requestId"])


# --- Local job queue ---

# Job events waiting to run after the current response
pending_jobs: list[dict[str, Any]] = []


def queue_event(event: BaseJobEvent) -> str:
    """Stand-in for eventbridge.send_event that queues the job in-process."""
    event_id = f"local-{uuid4()}"
    pending_jobs.append({
        "id": event_id,
        "source": get_settings().eventbridge_source,
        "detail-type": event.detail_type(),
        "detail": event.to_eventbridge_detail(),
    })
    log.info("job_queued_locally", detail_type=event.detail_type(), event_id=event_id)
    return event_id


def patch_eventbridge() -> None:
    """Route published job events to the local queue instead of EventBridge."""
    eventbridge.send_event = queue_event
    log.info("eventbridge_patched_for_local_mode")


def run_pending_jobs() -> None:
    """Run queued jobs in publication order through the jobs handler."""
    while pending_jobs:
        job = pending_jobs.pop(0)
        jobs_handler(job, SimpleNamespace(aws_request_id=job["id"]))


@app.get("/")
async def root():
    """Health check endpoint."""
    settings = get_settings()
    return {
        "status": "ok",
        "environment": settings.environment,
        "watch_channel_id": settings.watch_channel_id or None,
    }


@app.post("/slack/events")
async def slack_events(request: Request) -> Response:
    """Slack Events API endpoint."""
    event = await to_proxy_event(request)
    return to_response(events_handler(event, _context(event)))


@app.post("/slack/interactions")
async def slack_interactions(request: Request, background_tasks: BackgroundTasks) -> Response:
    """Slack interactivity endpoint; queued jobs run once the response is sent."""
    event = await to_proxy_event(request)
    response = to_response(interactions_handler(event, _context(event)))
    background_tasks.add_task(run_pending_jobs)
    return response


if __name__ == "__main__":
    import uvicorn

    patch_eventbridge()
    port = int(os.environ.get("PORT", "3000"))
    log.info("starting_local_slack_server", host="0.0.0.0", port=port)
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
