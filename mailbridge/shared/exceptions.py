"""
Custom Exceptions for the Order Mail Bridge

All exceptions follow the pattern of specific, actionable errors
with context needed for debugging and logging.

A subject that does not match any notification pattern is not an error
(it is a normal "ignore" outcome), and malformed source MIME is absorbed
by the MIME reader, so neither has an exception type here.
"""

from dataclasses import dataclass
from typing import Any


class MailBridgeError(Exception):
    """Base exception for the order mail bridge."""

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


@dataclass
class ResolutionError(MailBridgeError):
    """No mail thread, message, recipient or subject could be resolved."""

    subject_guess: str | None = None
    thread_id: str | None = None

    def __init__(
        self,
        message: str,
        subject_guess: str | None = None,
        thread_id: str | None = None,
    ) -> None:
        self.subject_guess = subject_guess
        self.thread_id = thread_id
        super().__init__(
            message,
            subject_guess=subject_guess,
            thread_id=thread_id,
        )


@dataclass
class DeliveryError(MailBridgeError):
    """Submitting an outbound message to the mailbox failed."""

    operation: str  # "reply", "forward"
    recipient: str | None = None

    def __init__(
        self,
        operation: str,
        recipient: str | None = None,
        error_message: str | None = None,
    ) -> None:
        self.operation = operation
        self.recipient = recipient
        self.error_message = error_message
        super().__init__(
            f"Gmail {operation} failed{f' for {recipient}' if recipient else ''}: "
            f"{error_message or 'Unknown error'}",
            operation=operation,
            recipient=recipient,
        )


@dataclass
class GmailAPIError(MailBridgeError):
    """Gmail API call failed."""

    operation: str  # "threads.list", "threads.get", "attachments.get", "messages.send"
    status_code: int | None = None

    def __init__(
        self,
        operation: str,
        status_code: int | None = None,
        error_message: str | None = None,
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        self.error_message = error_message
        super().__init__(
            f"Gmail {operation} failed: {error_message or 'Unknown error'}",
            operation=operation,
            status_code=status_code,
        )


@dataclass
class SlackAPIError(MailBridgeError):
    """Slack Web API call failed."""

    method: str  # "chat.postMessage", "views.open", ...
    error_code: str | None = None

    def __init__(
        self,
        method: str,
        error_code: str | None = None,
    ) -> None:
        self.method = method
        self.error_code = error_code
        super().__init__(
            f"Slack {method} failed: {error_code or 'Unknown error'}",
            method=method,
            error_code=error_code,
        )


@dataclass
class CorrelationStateError(MailBridgeError):
    """Correlation state bundle is unreadable, too large, or a merge conflicts."""

    field_name: str | None = None

    def __init__(self, message: str, field_name: str | None = None) -> None:
        self.field_name = field_name
        if field_name:
            super().__init__(message, field_name=field_name)
        else:
            super().__init__(message)


@dataclass
class InvalidWorkflowTransitionError(MailBridgeError):
    """Attempted invalid workflow step transition."""

    current_state: str
    new_state: str
    allowed_transitions: list[str]

    def __init__(
        self,
        current_state: str,
        new_state: str,
        allowed_transitions: list[str],
    ) -> None:
        self.current_state = current_state
        self.new_state = new_state
        self.allowed_transitions = allowed_transitions
        super().__init__(
            f"Cannot transition from '{current_state}' to '{new_state}'. "
            f"Allowed transitions: {allowed_transitions}",
            current_state=current_state,
            new_state=new_state,
            allowed_transitions=allowed_transitions,
        )


@dataclass
class CredentialsError(MailBridgeError):
    """Required credentials are missing or could not be loaded."""

    source: str  # "environment", "secretsmanager"

    def __init__(self, source: str, error_message: str | None = None) -> None:
        self.source = source
        super().__init__(
            f"Credentials unavailable from {source}: {error_message or 'Unknown error'}",
            source=source,
        )


@dataclass
class EventPublishError(MailBridgeError):
    """Failed to publish a workflow job to EventBridge."""

    event_type: str
    error_code: str | None = None

    def __init__(
        self,
        event_type: str,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> None:
        self.event_type = event_type
        self.error_code = error_code
        super().__init__(
            f"Failed to publish event '{event_type}': {error_message or 'Unknown error'}",
            event_type=event_type,
            error_code=error_code,
        )
