"""Monotonic delivery status transitions for review request SMS.

Canonical lifecycle::

    PENDING -> SENT -> DELIVERED
         \\        \\-> FAILED
          \\-> FAILED

``CLICKED`` and ``COMPLETED`` are set by the review flow, outside this module,
and rank above ``DELIVERED``. Callbacks arrive out of order and repeatedly, so
every rule only moves forward and applying the same callback twice is a no-op.

The resolver is a pure function: it never touches the database or the clock
(``now`` is passed in) and returns the full set of fields to persist.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from sms_webhooks.utils.delivery_status import (
    DELIVERED_STATUSES,
    FAILED_STATUSES,
    SENDING_STATUSES,
    is_recognized_status,
)

logger = logging.getLogger(__name__)

FAILURE_MESSAGE_PREFIX = "SMS failed: "


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    CLICKED = "CLICKED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# Engagement states recorded by the review flow; callbacks never override them.
ENGAGED_STATUSES = frozenset({RequestStatus.CLICKED, RequestStatus.COMPLETED})
SUCCESS_STATUSES = frozenset({RequestStatus.DELIVERED}) | ENGAGED_STATUSES


class TransitionRule(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class CurrentState:
    """Status fields of a stored review request."""

    status: Optional[str]
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    error_message: Optional[str] = None
    sms_error_code: Optional[str] = None


@dataclass(frozen=True)
class Transition:
    """Fields to persist after applying one callback.

    ``status`` is the stored string; it stays untouched when the stored value
    is not a status this module owns.
    """

    status: str
    sms_status: str
    sms_error_code: Optional[str]
    error_message: Optional[str]
    sent_at: Optional[datetime]
    delivered_at: Optional[datetime]
    rule: TransitionRule
    changed: bool


def coerce_status(value: Optional[str]) -> Optional[RequestStatus]:
    """Map a stored status to ``RequestStatus``.

    Missing values count as ``PENDING``; unknown values return None.
    """
    if value is None or not str(value).strip():
        return RequestStatus.PENDING
    try:
        return RequestStatus(str(value).strip().upper())
    except ValueError:
        return None


def format_failure_message(error_text: Optional[str]) -> Optional[str]:
    if not error_text or not error_text.strip():
        return None
    return f"{FAILURE_MESSAGE_PREFIX}{error_text.strip()}"


def _classify(provider_status: str) -> TransitionRule:
    if provider_status in SENDING_STATUSES:
        return TransitionRule.SENT
    if provider_status in DELIVERED_STATUSES:
        return TransitionRule.DELIVERED
    if provider_status in FAILED_STATUSES:
        return TransitionRule.FAILED
    return TransitionRule.IGNORED


def _target_status(
    rule: TransitionRule, current: RequestStatus
) -> Optional[RequestStatus]:
    """Return the new canonical status, or None when the rule must not fire."""

    if rule is TransitionRule.SENT:
        return RequestStatus.SENT if current is RequestStatus.PENDING else None
    if rule is TransitionRule.DELIVERED:
        return RequestStatus.DELIVERED if current not in ENGAGED_STATUSES else None
    if rule is TransitionRule.FAILED:
        return RequestStatus.FAILED if current not in SUCCESS_STATUSES else None
    return None


def resolve_transition(
    current: CurrentState,
    provider_status: str,
    *,
    now: datetime,
    error_code: Optional[str] = None,
    error_text: Optional[str] = None,
    allowed_rules: Optional[frozenset[TransitionRule]] = None,
) -> Transition:
    """Apply one normalized provider status to the current state.

    Rules, first match wins:

    1. queued/accepted/sending/sent: ``PENDING`` -> ``SENT``, stamping
       ``sent_at`` once; any other state is left alone.
    2. delivered: -> ``DELIVERED`` unless ``CLICKED``/``COMPLETED``;
       ``delivered_at`` is stamped once.
    3. undelivered/failed: -> ``FAILED`` unless already delivered or engaged;
       the provider error text is recorded as ``"SMS failed: <text>"``.
    4. anything else: no status change.

    ``sms_status`` and a provided ``error_code`` are carried into the result
    whatever rule fires. ``allowed_rules`` restricts which rules may change the
    canonical status (delivery receipts only honor ``DELIVERED``).
    """

    rule = _classify(provider_status)
    if allowed_rules is not None and rule not in allowed_rules:
        rule = TransitionRule.IGNORED

    stored_status = current.status or RequestStatus.PENDING.value
    sms_error_code = error_code if error_code else current.sms_error_code
    result = dict(
        status=stored_status,
        sms_status=provider_status,
        sms_error_code=sms_error_code,
        error_message=current.error_message,
        sent_at=current.sent_at,
        delivered_at=current.delivered_at,
        rule=rule,
        changed=False,
    )

    if rule is TransitionRule.IGNORED:
        if is_recognized_status(provider_status):
            logger.debug("Ignored SMS status %r for %s", provider_status, stored_status)
        else:
            logger.debug("Unrecognized SMS status %r", provider_status)
        return Transition(**result)

    canonical = coerce_status(current.status)
    if canonical is None:
        logger.info(
            "Stored status is not managed by the webhook; leaving it unchanged",
            extra={"stored_status": current.status, "sms_status": provider_status},
        )
        return Transition(**result)

    target = _target_status(rule, canonical)
    if target is None:
        return Transition(**result)

    result["status"] = target.value
    result["changed"] = target is not canonical

    if target is RequestStatus.SENT and current.sent_at is None:
        result["sent_at"] = now
    elif target is RequestStatus.DELIVERED and current.delivered_at is None:
        result["delivered_at"] = now
    elif target is RequestStatus.FAILED:
        failure_message = format_failure_message(error_text)
        if failure_message:
            result["error_message"] = failure_message

    return Transition(**result)
