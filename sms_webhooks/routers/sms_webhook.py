import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from sms_webhooks.config import WebhookSettings
from sms_webhooks.dependencies import get_status_reconciler, get_webhook_settings
from sms_webhooks.errors import AuthenticationError, MissingParameterError, TransientPersistenceError
from sms_webhooks.schemas import StatusCallback, WebhookConfigResponse, WebhookHealthResponse
from sms_webhooks.services.status_reconciler import (
    ReconcileOutcome,
    ReconcileResult,
    StatusReconciler,
)
from sms_webhooks.time_utils import isoformat_utc, now_utc
from sms_webhooks.twilio_signature import verify_callback_signature
from sms_webhooks.utils.delivery_status import PROVIDER_STATUSES
from sms_webhooks.utils.phone import mask_phone_number

logger = logging.getLogger(__name__)

PREFIX = "/api/webhooks/sms"
STATUS_PATH = "/status"
DELIVERY_PATH = "/delivery"

router = APIRouter(prefix=PREFIX, tags=["sms-webhooks"])


async def _read_form(request: Request) -> dict[str, str]:
    """Return the form body as a flat dict; uploads are dropped."""
    try:
        form_data = await request.form()
    except Exception as e:
        logger.warning("Failed to parse Twilio callback form data", exc_info=e)
        return {}
    return {key: value for key, value in form_data.items() if isinstance(value, str)}


def _authenticate_and_parse(
    request: Request,
    params: dict[str, str],
    signature: Optional[str],
    settings: WebhookSettings,
    endpoint: str,
):
    """Return a StatusCallback, or the error response to send instead."""
    try:
        verify_callback_signature(settings, str(request.url), params, signature)
    except AuthenticationError as exc:
        logger.warning("Invalid Twilio signature. Rejecting webhook.", extra={"endpoint": endpoint})
        return PlainTextResponse("Invalid signature", status_code=exc.status_code)

    try:
        return StatusCallback.from_form(params)
    except MissingParameterError as exc:
        logger.warning(
            "Invalid webhook payload (missing MessageSid or MessageStatus)",
            extra={"endpoint": endpoint, "missing": exc.missing, "payload_keys": sorted(params)},
        )
        return PlainTextResponse("Missing required parameters", status_code=exc.status_code)


async def _reconcile(
    apply: Callable[[StatusCallback], ReconcileResult],
    callback: StatusCallback,
    *,
    endpoint: str,
    success_body: str,
) -> PlainTextResponse:
    try:
        result = await run_in_threadpool(apply, callback)
    except TransientPersistenceError as e:
        logger.error(
            "Transient failure persisting SMS status",
            exc_info=e,
            extra={"endpoint": endpoint, "message_sid": callback.sid, "sms_status": callback.status},
        )
        return PlainTextResponse("Temporary failure, retry later", status_code=e.status_code)
    except Exception as e:
        # Acknowledge so Twilio does not retry a callback that will fail again
        logger.error(
            "Error processing SMS webhook",
            exc_info=e,
            extra={"endpoint": endpoint, "message_sid": callback.sid, "sms_status": callback.status},
        )
        return PlainTextResponse("Webhook received", status_code=200)

    if result.outcome is ReconcileOutcome.NOT_TRACKED:
        return PlainTextResponse("Message not tracked by app", status_code=200)
    return PlainTextResponse(success_body, status_code=200)


@router.post(STATUS_PATH, response_class=PlainTextResponse)
async def handle_sms_status_update(
    request: Request,
    x_twilio_signature: Optional[str] = Header(None),
    settings: WebhookSettings = Depends(get_webhook_settings),
    reconciler: StatusReconciler = Depends(get_status_reconciler),
):
    """
    Twilio Status Callback for outbound review request SMS.

    Configure the Messaging Service status callback as
    ``POST {PUBLIC_BASE_URL}/api/webhooks/sms/status``.
    """
    params = await _read_form(request)
    parsed = _authenticate_and_parse(request, params, x_twilio_signature, settings, endpoint="status")
    if not isinstance(parsed, StatusCallback):
        return parsed

    logger.info(
        "Twilio status webhook received",
        extra={
            "message_sid": parsed.sid,
            "sms_status": parsed.status,
            "error_code": parsed.error_code,
            "to": mask_phone_number(parsed.to),
            "from": mask_phone_number(parsed.from_),
        },
    )

    return await _reconcile(
        reconciler.apply_status_callback,
        parsed,
        endpoint="status",
        success_body="Status updated",
    )


@router.post(DELIVERY_PATH, response_class=PlainTextResponse)
async def handle_sms_delivery_receipt(
    request: Request,
    x_twilio_signature: Optional[str] = Header(None),
    settings: WebhookSettings = Depends(get_webhook_settings),
    reconciler: StatusReconciler = Depends(get_status_reconciler),
):
    """Carrier delivery receipts; only a ``delivered`` receipt moves the request forward."""
    params = await _read_form(request)
    parsed = _authenticate_and_parse(request, params, x_twilio_signature, settings, endpoint="delivery")
    if not isinstance(parsed, StatusCallback):
        return parsed

    logger.info(
        "Delivery receipt received",
        extra={"message_sid": parsed.sid, "sms_status": parsed.status},
    )

    return await _reconcile(
        reconciler.apply_delivery_receipt,
        parsed,
        endpoint="delivery",
        success_body="Delivery receipt processed",
    )


@router.get("/health", response_model=WebhookHealthResponse)
async def webhook_health():
    return WebhookHealthResponse(status="healthy", service="sms-webhook", timestamp=isoformat_utc(now_utc()))


@router.get("/config", response_model=WebhookConfigResponse, response_model_by_alias=True)
async def webhook_config(settings: WebhookSettings = Depends(get_webhook_settings)):
    """Report the active signature mode and where the auth token came from (never the token)."""
    return WebhookConfigResponse(
        status_url=f"{PREFIX}{STATUS_PATH}",
        delivery_url=f"{PREFIX}{DELIVERY_PATH}",
        validate_signature=settings.validate_signature,
        auth_mode=settings.auth_mode,
        auth_token_source=settings.auth_token_source,
        supported_events=list(PROVIDER_STATUSES),
    )
