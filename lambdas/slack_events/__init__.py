"""
SlackEvents Lambda

Receives Slack Events API callbacks and offers Reply/Forward actions
under recognized order notifications.

Flow:
    Email relayed into Slack
    → Slack Events API (message event)
    → API Gateway
    → This Lambda
    → chat.postMessage with action buttons
"""

from lambdas.slack_events.handler import lambda_handler

__all__ = ["lambda_handler"]
