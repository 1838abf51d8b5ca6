"""Webhook configuration, resolved once at startup."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlparse

from sms_webhooks.utils.env import get_env_bool, get_env_int, get_env_str

logger = logging.getLogger(__name__)

# Auth token sources in precedence order; the first non-empty value wins.
AUTH_TOKEN_SOURCES: tuple[str, ...] = (
    "SMS_WEBHOOK_AUTH_TOKEN",
    "TWILIO_WEBHOOK_AUTH_TOKEN",
    "SMS_WEBHOOK_SECRET",
    "TWILIO_AUTH_TOKEN",
)

UNSET_SOURCE = "unset"


@dataclass(frozen=True)
class WebhookSettings:
    validate_signature: bool = True
    auth_token: Optional[str] = None
    auth_token_source: str = UNSET_SOURCE
    public_base_url: Optional[str] = None
    max_write_attempts: int = 3

    @property
    def has_auth_token(self) -> bool:
        return bool(self.auth_token)

    @property
    def auth_mode(self) -> str:
        """``enforce``, ``unauthenticated`` (fail-open) or ``disabled``."""
        if not self.validate_signature:
            return "disabled"
        return "enforce" if self.has_auth_token else "unauthenticated"


def resolve_auth_token(environ: Optional[Mapping[str, str]] = None) -> tuple[Optional[str], str]:
    """Return ``(token, source_name)`` using ``AUTH_TOKEN_SOURCES`` precedence."""

    for source in AUTH_TOKEN_SOURCES:
        token = get_env_str(source, environ)
        if token:
            return token, source
    return None, UNSET_SOURCE


def _validated_base_url(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    parsed = urlparse(value)
    if parsed.scheme and parsed.netloc:
        return value.rstrip("/")
    logger.warning("PUBLIC_BASE_URL must be an absolute URL; ignoring value: %s", value)
    return None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> WebhookSettings:
    token, source = resolve_auth_token(environ)
    settings = WebhookSettings(
        validate_signature=get_env_bool("SMS_WEBHOOK_VALIDATE_SIGNATURE", True, environ),
        auth_token=token,
        auth_token_source=source,
        public_base_url=_validated_base_url(get_env_str("PUBLIC_BASE_URL", environ)),
        max_write_attempts=max(1, get_env_int("SMS_WEBHOOK_MAX_WRITE_ATTEMPTS", 3, environ)),
    )

    if settings.auth_mode == "unauthenticated":
        logger.warning(
            "Twilio signature validation is ENABLED but no auth token is configured; "
            "callbacks will be accepted without validation",
            extra={"checked_sources": list(AUTH_TOKEN_SOURCES)},
        )
    else:
        logger.info(
            "Webhook auth configured",
            extra={"auth_mode": settings.auth_mode, "auth_token_source": settings.auth_token_source},
        )
    return settings
