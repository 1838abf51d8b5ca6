import os
import sys
import tempfile
from pathlib import Path

import pytest
from twilio.request_validator import RequestValidator


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# File-backed SQLite so the app's threadpool and the tests share one database
_DB_DIR = Path(tempfile.mkdtemp(prefix="sms_webhooks_tests_"))
os.environ.setdefault("DATABASE_URL", f"sqlite+pysqlite:///{_DB_DIR / 'webhooks.db'}")

# Keep the host environment from leaking an auth token into the tests
for _name in (
    "SMS_WEBHOOK_AUTH_TOKEN",
    "TWILIO_WEBHOOK_AUTH_TOKEN",
    "SMS_WEBHOOK_SECRET",
    "TWILIO_AUTH_TOKEN",
    "PUBLIC_BASE_URL",
):
    os.environ.pop(_name, None)

TEST_AUTH_TOKEN = "test-auth-token"
BASE_URL = "http://testserver"


@pytest.fixture
def db():
    from sms_webhooks.appdb import engine
    from sms_webhooks.db_schema import ensure_review_request_schema

    ensure_review_request_schema()
    with engine.begin() as conn:
        conn.exec_driver_sql("DELETE FROM review_requests")
    return engine


@pytest.fixture
def make_review_request(db):
    from sms_webhooks.appdb import get_session
    from sms_webhooks.models import ReviewRequest

    def _make(sms_message_id: str, status: str = "PENDING", **fields) -> int:
        with get_session() as session:
            row = ReviewRequest(sms_message_id=sms_message_id, status=status, **fields)
            session.add(row)
            session.flush()
            return row.id

    return _make


@pytest.fixture
def fetch_review_request(db):
    from sms_webhooks.repositories import ReviewRequestRepository

    repo = ReviewRequestRepository()
    return repo.get_by_sms_message_id


@pytest.fixture
def webhook_settings():
    from sms_webhooks.config import WebhookSettings

    return WebhookSettings(
        validate_signature=True,
        auth_token=TEST_AUTH_TOKEN,
        auth_token_source="SMS_WEBHOOK_AUTH_TOKEN",
    )


@pytest.fixture
def client(db, webhook_settings):
    from fastapi.testclient import TestClient

    from sms_webhooks.dependencies import get_webhook_settings
    from sms_webhooks.main import app

    app.dependency_overrides[get_webhook_settings] = lambda: webhook_settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def sign(path: str, params: dict, token: str = TEST_AUTH_TOKEN) -> str:
    return RequestValidator(token).compute_signature(f"{BASE_URL}{path}", params)


@pytest.fixture
def post_signed(client):
    def _post(path: str, params: dict, token: str = TEST_AUTH_TOKEN):
        return client.post(path, data=params, headers={"X-Twilio-Signature": sign(path, params, token)})

    return _post
