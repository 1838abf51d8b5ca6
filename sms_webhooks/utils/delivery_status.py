"""Delivery status normalization helpers.

Twilio reports message lifecycle as ``queued``, ``accepted``, ``sending``,
``sent``, ``delivered``, ``undelivered`` or ``failed``. Statuses are only
lowercased and trimmed here; tokens outside that vocabulary are passed through
unchanged so new provider states show up in the audit column instead of being
rewritten.
"""
from __future__ import annotations

from typing import Mapping, Optional

PROVIDER_STATUSES: tuple[str, ...] = (
    "queued",
    "accepted",
    "sending",
    "sent",
    "delivered",
    "undelivered",
    "failed",
)

SENDING_STATUSES = frozenset({"queued", "accepted", "sending", "sent"})
DELIVERED_STATUSES = frozenset({"delivered"})
FAILED_STATUSES = frozenset({"undelivered", "failed"})

# Twilio sends MessageStatus; older callbacks only carry SmsStatus.
STATUS_FIELDS: tuple[str, ...] = ("MessageStatus", "SmsStatus")


def normalize_delivery_status(status: Optional[str]) -> str:
    """Lowercase and trim a provider status; empty input yields ``""``."""

    if not status:
        return ""
    return status.strip().lower()


def is_recognized_status(status: str) -> bool:
    return status in PROVIDER_STATUSES


def extract_raw_status(params: Mapping[str, Optional[str]]) -> Optional[str]:
    """Return the first non-blank status field from a callback payload."""

    for field in STATUS_FIELDS:
        value = params.get(field)
        if value and value.strip():
            return value
    return None
