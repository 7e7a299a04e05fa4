"""
SlackInteractions Lambda

Receives Slack interactivity callbacks (button clicks, modal submissions
and closes) and drives the reply/forward workflow.

Flow:
    Operator clicks Reply/Forward or submits a modal
    → API Gateway
    → This Lambda
    → Gmail search/fetch/send, Slack views and messages
"""

from lambdas.slack_interactions.handler import lambda_handler

__all__ = ["lambda_handler"]
