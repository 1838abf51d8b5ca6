"""Exceptions raised while handling provider status callbacks."""

from __future__ import annotations


class WebhookError(Exception):
    """Base class for callback handling errors."""

    status_code: int = 500


class AuthenticationError(WebhookError):
    """The callback signature is missing or does not match."""

    status_code = 403


class MissingParameterError(WebhookError):
    """A required callback field (message SID or status) is absent."""

    status_code = 400

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required parameters: {', '.join(missing)}")


class StaleWriteError(WebhookError):
    """The record changed between read and write (version mismatch)."""


class TransientPersistenceError(WebhookError):
    """The status write could not be committed; the provider may retry."""

    status_code = 503
