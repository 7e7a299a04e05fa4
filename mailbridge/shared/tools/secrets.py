"""
Secrets Tools

Loads Slack and Gmail credentials. Values set directly in the environment
win; anything missing is read from an AWS Secrets Manager secret whose
SecretString is a JSON object keyed by settings field name.
"""

import json
from dataclasses import dataclass
from functools import lru_cache

import boto3
from botocore.exceptions import ClientError
import structlog

from mailbridge.shared.config import get_settings
from mailbridge.shared.exceptions import CredentialsError

log = structlog.get_logger()

CREDENTIAL_FIELDS = (
    "slack_bot_token",
    "slack_signing_secret",
    "gmail_client_id",
    "gmail_client_secret",
    "gmail_refresh_token",
)


@dataclass(frozen=True)
class BridgeCredentials:
    """Resolved Slack and Gmail credentials."""

    slack_bot_token: str | None = None
    slack_signing_secret: str | None = None
    gmail_client_id: str | None = None
    gmail_client_secret: str | None = None
    gmail_refresh_token: str | None = None

    def require(self, *names: str) -> None:
        """
        Ensure the named credentials are present.

        Raises:
            CredentialsError: If any of them is missing
        """
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            raise CredentialsError(
                source="environment",
                error_message=f"missing {', '.join(missing)}",
            )


def _get_client():
    """Get Secrets Manager client."""
    settings = get_settings()
    return boto3.client("secretsmanager", **settings.secretsmanager_config)


def load_secret(secret_id: str) -> dict[str, str]:
    """
    Read a JSON secret from Secrets Manager.

    Args:
        secret_id: Secret name or ARN

    Returns:
        Decoded secret object

    Raises:
        CredentialsError: If the secret cannot be read or is not a JSON object
    """
    client = _get_client()

    try:
        response = client.get_secret_value(SecretId=secret_id)
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        log.error(
            "secret_read_failed",
            secret_id=secret_id,
            error_code=error_code,
        )
        raise CredentialsError(
            source="secretsmanager",
            error_message=f"{error_code}: {e}",
        ) from e

    try:
        data = json.loads(response.get("SecretString") or "")
    except json.JSONDecodeError as e:
        raise CredentialsError(
            source="secretsmanager",
            error_message="secret is not valid JSON",
        ) from e

    if not isinstance(data, dict):
        raise CredentialsError(
            source="secretsmanager",
            error_message="secret must be a JSON object",
        )

    log.debug("secret_loaded", secret_id=secret_id, keys=sorted(data))
    return data


@lru_cache(maxsize=1)
def get_credentials() -> BridgeCredentials:
    """
    Resolve credentials once per process.

    Call get_credentials.cache_clear() in tests after changing the environment.
    """
    settings = get_settings()
    values = {name: getattr(settings, name) for name in CREDENTIAL_FIELDS}

    if settings.secrets_id and not all(values.values()):
        secret = load_secret(settings.secrets_id)
        for name in CREDENTIAL_FIELDS:
            if not values[name] and secret.get(name):
                values[name] = str(secret[name])

    return BridgeCredentials(**values)
