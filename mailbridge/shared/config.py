"""
Configuration Management

Pydantic-settings based configuration for the order mail bridge.
All settings can be overridden via environment variables.
"""

from functools import lru_cache
from typing import Annotated, Literal

from email_validator import EmailNotValidError, validate_email
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_FORWARD_RECIPIENTS = [
    "kenny@carismodesign.com",
    "kevinl@carismodesign.com",
    "irish@carismodesign.com",
    "k@carismodesign.com",
    "shop@carismodesign.com",
    "nicholas@carismodesign.com",
]


def _normalize_address(value: str) -> str:
    """Validate an address with email-validator and lower-case it."""
    address = value.strip().lower()
    try:
        validate_email(address, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValueError(f"Invalid email address '{value}': {e}") from e
    return address


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are prefixed with MAILBRIDGE_ and are case-insensitive.
    Example: MAILBRIDGE_WATCH_CHANNEL_ID=C0123456789
    """

    model_config = SettingsConfigDict(
        env_prefix="MAILBRIDGE_",
        env_file=[".env.local", ".env"],  # Try .env.local first
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Mailbox Configuration
    shop_from_email: str = Field(
        default="shop@carismodesign.com",
        description="Shop mailbox address; replies and forwards are sent from it",
    )
    forward_recipients: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_FORWARD_RECIPIENTS),
        description="Team addresses offered as forward recipients",
    )
    thread_search_window_days: int = Field(
        default=60,
        ge=1,
        description="Trailing window (days) for the thread subject search",
    )
    thread_search_max_results: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Page size of the thread subject search",
    )

    # Slack Configuration
    watch_channel_id: str = Field(
        default="",
        description="Slack channel where bot-relayed emails are posted (empty disables)",
    )
    slack_bot_token: str | None = Field(
        default=None,
        description="Slack bot token (xoxb-...)",
    )
    slack_signing_secret: str | None = Field(
        default=None,
        description="Slack signing secret for request verification",
    )

    # Gmail Configuration
    gmail_client_id: str | None = Field(
        default=None,
        description="Google OAuth client ID",
    )
    gmail_client_secret: str | None = Field(
        default=None,
        description="Google OAuth client secret",
    )
    gmail_refresh_token: str | None = Field(
        default=None,
        description="Refresh token for the shop mailbox",
    )
    gmail_token_uri: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="Google OAuth token endpoint",
    )
    gmail_user_id: str = Field(
        default="me",
        description="Gmail API userId for all mailbox calls",
    )

    # AWS Configuration
    secrets_id: str | None = Field(
        default=None,
        description="Secrets Manager secret (JSON) holding Slack/Gmail credentials",
    )
    secretsmanager_endpoint_url: str | None = Field(
        default=None,
        description="Secrets Manager endpoint URL (for local development)",
    )
    aws_region: str = Field(
        default="us-west-2",
        description="AWS region",
    )
    eventbridge_bus_name: str = Field(
        default="mailbridge-events",
        description="EventBridge bus carrying deferred workflow jobs",
    )
    eventbridge_source: str = Field(
        default="mailbridge.slack",
        description="Source of published workflow job events",
    )
    eventbridge_endpoint_url: str | None = Field(
        default=None,
        description="EventBridge endpoint URL (for local development)",
    )

    # Application Configuration
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("shop_from_email")
    @classmethod
    def validate_shop_from_email(cls, v: str) -> str:
        """Shop address is compared lower-cased everywhere."""
        return _normalize_address(v)

    @field_validator("forward_recipients", mode="before")
    @classmethod
    def split_forward_recipients(cls, v: object) -> object:
        """Accept a comma-separated string from the environment."""
        if isinstance(v, str):
            return [item for item in (s.strip() for s in v.split(",")) if item]
        return v

    @field_validator("forward_recipients")
    @classmethod
    def validate_forward_recipients(cls, v: list[str]) -> list[str]:
        """Validate, lower-case and de-duplicate forward recipients."""
        recipients: list[str] = []
        for address in v:
            normalized = _normalize_address(address)
            if normalized not in recipients:
                recipients.append(normalized)
        if not recipients:
            raise ValueError("At least one forward recipient must be configured")
        return recipients

    @property
    def secretsmanager_config(self) -> dict:
        """Secrets Manager client configuration."""
        config = {"region_name": self.aws_region}
        if self.secretsmanager_endpoint_url:
            config["endpoint_url"] = self.secretsmanager_endpoint_url
        return config

    @property
    def eventbridge_config(self) -> dict:
        """EventBridge client configuration."""
        config = {"region_name": self.aws_region}
        if self.eventbridge_endpoint_url:
            config["endpoint_url"] = self.eventbridge_endpoint_url
        return config


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are loaded only once.
    Call get_settings.cache_clear() in tests after changing the environment.
    """
    return Settings()
