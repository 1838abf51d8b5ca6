import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sms_webhooks.db_schema import SchemaMissingError, ensure_review_request_schema
from sms_webhooks.dependencies import get_webhook_settings
from sms_webhooks.logging_setup import configure_logging
from sms_webhooks.routers import sms_webhook

configure_logging()
logger = logging.getLogger(__name__)

try:
    ensure_review_request_schema()
except SchemaMissingError as exc:
    raise RuntimeError(str(exc)) from exc
except Exception as exc:
    raise RuntimeError(f"Failed to validate database schema: {exc}") from exc

# Resolve the webhook auth token once, at startup
get_webhook_settings()

app = FastAPI(title="Review Request SMS Webhooks")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sms_webhook.router)


@app.get("/health")
def health():
    return {"ok": True}
