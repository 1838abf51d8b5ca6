"""
Centralized time helpers.

All timestamps are stored as UTC (TIMESTAMPTZ). Some drivers (SQLite) hand
back naive datetimes, so values read from the database go through
``ensure_aware`` before they are compared or serialized.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


def now_utc() -> datetime:
    """
    Get current time as timezone-aware UTC datetime.

    Returns:
        Current datetime in UTC
    """
    return datetime.now(timezone.utc)


def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware, assuming UTC for naive values.

    Args:
        dt: Datetime that may be naive or aware

    Returns:
        Timezone-aware datetime, or None if dt is None
    """
    if dt is None:
        return None

    if dt.tzinfo is not None:
        return dt

    logger.debug("Treating naive datetime %s as UTC", dt)
    return dt.replace(tzinfo=timezone.utc)


def isoformat_utc(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as an ISO-8601 UTC string."""
    aware = ensure_aware(dt)
    if aware is None:
        return None
    return aware.astimezone(timezone.utc).isoformat()
