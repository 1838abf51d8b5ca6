"""Common FastAPI dependency providers."""

from sms_webhooks.config import WebhookSettings, load_settings
from sms_webhooks.services.status_reconciler import StatusReconciler

_settings: WebhookSettings | None = None
_reconciler: StatusReconciler | None = None


def get_webhook_settings() -> WebhookSettings:
    """Return the process-wide :class:`WebhookSettings`, loaded on first use."""

    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def get_status_reconciler() -> StatusReconciler:
    """Return a singleton-like :class:`StatusReconciler`.

    The reconciler is stateless apart from its configuration, so one instance
    is shared by all requests.
    """

    global _reconciler
    if _reconciler is None:
        _reconciler = StatusReconciler(
            max_write_attempts=get_webhook_settings().max_write_attempts
        )
    return _reconciler
