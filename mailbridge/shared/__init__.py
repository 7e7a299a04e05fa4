# Shared Infrastructure for the Order Mail Bridge
"""
Shared infrastructure components for the Slack/Gmail order mail bridge.

This package provides:
- Workflow state machine (WorkflowState, valid transitions)
- Pydantic models for mail part trees and correlation state
- Tool implementations for Gmail, Slack, Secrets Manager and MIME handling
- Configuration management
- Custom exceptions
"""

from mailbridge.shared.config import Settings, get_settings
from mailbridge.shared.exceptions import (
    CorrelationStateError,
    CredentialsError,
    DeliveryError,
    EventPublishError,
    GmailAPIError,
    InvalidWorkflowTransitionError,
    MailBridgeError,
    ResolutionError,
    SlackAPIError,
)
from mailbridge.shared.workflow import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    WorkflowAction,
    WorkflowState,
    validate_transition,
)

__all__ = [
    # Workflow
    "WorkflowAction",
    "WorkflowState",
    "TERMINAL_STATES",
    "VALID_TRANSITIONS",
    "validate_transition",
    # Exceptions
    "MailBridgeError",
    "ResolutionError",
    "DeliveryError",
    "GmailAPIError",
    "SlackAPIError",
    "CorrelationStateError",
    "InvalidWorkflowTransitionError",
    "CredentialsError",
    "EventPublishError",
    # Config
    "Settings",
    "get_settings",
]
