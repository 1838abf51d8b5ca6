# sms_webhooks/twilio_signature.py
from __future__ import annotations

import logging
from typing import Mapping, Optional
from urllib.parse import urlsplit

from twilio.request_validator import RequestValidator

from sms_webhooks.config import WebhookSettings
from sms_webhooks.errors import AuthenticationError

SIGNATURE_HEADER = "X-Twilio-Signature"

logger = logging.getLogger(__name__)


def build_signed_url(request_url: str, public_base_url: Optional[str] = None) -> str:
    """Return the URL Twilio signed for this callback.

    Twilio signs the absolute public URL, query string included. Behind a proxy
    the request URL seen by the app differs (scheme/host), so when
    ``PUBLIC_BASE_URL`` is configured its scheme and host replace the request's.
    """

    if not public_base_url:
        return request_url

    parts = urlsplit(request_url)
    path = parts.path if parts.path.startswith("/") else f"/{parts.path}"
    url = f"{public_base_url.rstrip('/')}{path}"
    if parts.query:
        url = f"{url}?{parts.query}"
    return url


def is_signature_valid(
    url: str,
    params: Mapping[str, str],
    signature: Optional[str],
    auth_token: str,
) -> bool:
    """Check ``X-Twilio-Signature`` against the URL and form params.

    A missing header is invalid. Errors raised by the validator count as invalid.
    """

    if not signature:
        logger.warning("Missing %s header", SIGNATURE_HEADER)
        return False

    try:
        validator = RequestValidator(auth_token)
        ok = validator.validate(url, dict(params), signature)
    except Exception as exc:
        logger.warning("Signature validation error: %s", exc)
        return False

    if not ok:
        logger.debug("Signature validation failed", extra={"url": url, "param_keys": sorted(params)})
    return ok


def verify_callback_signature(
    settings: WebhookSettings,
    request_url: str,
    params: Mapping[str, str],
    signature: Optional[str],
) -> None:
    """Raise AuthenticationError unless the callback is acceptable under ``settings``.

    With validation enabled but no auth token resolved the callback is let
    through unauthenticated (logged as a warning on every request).
    """

    if not settings.validate_signature:
        return

    if not settings.has_auth_token:
        logger.warning(
            "Twilio signature validation is ENABLED but no auth token is configured. "
            "Proceeding without validation."
        )
        return

    url = build_signed_url(request_url, settings.public_base_url)
    if not is_signature_valid(url, params, signature, settings.auth_token):
        raise AuthenticationError("Invalid signature")
