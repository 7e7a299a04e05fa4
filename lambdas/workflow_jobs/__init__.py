"""
WorkflowJobs Lambda

Runs the Gmail side of the reply/forward workflow outside Slack's
three-second acknowledgement window.

Flow:
    SlackInteractions publishes a job event
    → EventBridge rule (source mailbridge.slack)
    → This Lambda
    → Gmail search/fetch/send, Slack views.update and messages
"""

from lambdas.workflow_jobs.handler import lambda_handler

__all__ = ["lambda_handler"]
