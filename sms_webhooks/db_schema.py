"""Utilities to ensure the review request tracking schema exists."""

from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import make_url

from sms_webhooks.appdb import DATABASE_URL, engine
from sms_webhooks.models import ReviewRequest

logger = logging.getLogger(__name__)

REVIEW_REQUESTS_TABLE = ReviewRequest.__tablename__

# Columns the status webhook depends on. Older deployments of the sending
# subsystem created the table without the concurrency/audit columns.
_TRACKING_COLUMNS = {
    "delivered_at": {"postgresql": "TIMESTAMPTZ", "default": "TIMESTAMP"},
    "updated_at": {"postgresql": "TIMESTAMPTZ", "default": "TIMESTAMP"},
    "version": {"postgresql": "INTEGER NOT NULL DEFAULT 0", "default": "INTEGER NOT NULL DEFAULT 0"},
}


class SchemaMissingError(RuntimeError):
    """Raised when a required database table or column is missing."""


def database_label() -> str:
    """Return a safe, credential-free label for the configured database."""

    url = make_url(DATABASE_URL)
    host = url.host or "localhost"
    name = url.database or ""
    return f"{host}/{name}" if name else host


def _ensure_tracking_columns() -> None:
    """Add tracking columns missing from a pre-existing table."""

    existing = {col["name"] for col in inspect(engine).get_columns(REVIEW_REQUESTS_TABLE)}
    missing = [name for name in _TRACKING_COLUMNS if name not in existing]
    if not missing:
        return

    dialect = engine.dialect.name
    with engine.begin() as conn:
        for name in missing:
            ddl = _TRACKING_COLUMNS[name].get(dialect, _TRACKING_COLUMNS[name]["default"])
            logger.info("Adding column %s.%s (%s)", REVIEW_REQUESTS_TABLE, name, ddl)
            conn.exec_driver_sql(f"ALTER TABLE {REVIEW_REQUESTS_TABLE} ADD COLUMN {name} {ddl}")


def ensure_review_request_schema() -> None:
    """Create the review_requests table if missing and backfill tracking columns.

    Idempotent; safe to call on every startup.
    """

    inspector = inspect(engine)
    if REVIEW_REQUESTS_TABLE not in inspector.get_table_names():
        logger.info(
            "Creating %s table on %s", REVIEW_REQUESTS_TABLE, database_label()
        )
        ReviewRequest.__table__.create(bind=engine, checkfirst=True)
        return

    _ensure_tracking_columns()

    existing = {col["name"] for col in inspect(engine).get_columns(REVIEW_REQUESTS_TABLE)}
    required = {"id", "sms_message_id", "status", "sms_status", "sms_error_code", "error_message", "sent_at"}
    missing = sorted(required - existing)
    if missing:
        raise SchemaMissingError(
            f"Table {REVIEW_REQUESTS_TABLE} on {database_label()} is missing columns: {', '.join(missing)}"
        )
