"""Applies provider status callbacks to review requests."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from sqlalchemy.exc import OperationalError

from sms_webhooks.errors import StaleWriteError, TransientPersistenceError
from sms_webhooks.repositories import ReviewRequestRepository
from sms_webhooks.schemas import StatusCallback
from sms_webhooks.state_machine import (
    CurrentState,
    Transition,
    TransitionRule,
    resolve_transition,
)
from sms_webhooks.time_utils import now_utc

logger = logging.getLogger(__name__)

DELIVERY_RECEIPT_RULES = frozenset({TransitionRule.DELIVERED})


class ReconcileOutcome(str, Enum):
    UPDATED = "updated"
    NOT_TRACKED = "not_tracked"


@dataclass(frozen=True)
class ReconcileResult:
    outcome: ReconcileOutcome
    request_id: Optional[int] = None
    transition: Optional[Transition] = None


class StatusReconciler:
    """Read-modify-write of one review request per callback.

    The write is a compare-and-swap on ``version``. When a concurrent callback
    wins the race the row is re-read and the transition recomputed, up to
    ``max_write_attempts`` times.
    """

    def __init__(
        self,
        repository: Optional[ReviewRequestRepository] = None,
        *,
        max_write_attempts: int = 3,
        clock: Callable = now_utc,
    ):
        self.repository = repository or ReviewRequestRepository()
        self.max_write_attempts = max(1, max_write_attempts)
        self.clock = clock

    def apply_status_callback(self, callback: StatusCallback) -> ReconcileResult:
        """Primary status callback: every transition rule applies."""
        return self._reconcile(callback, allowed_rules=None)

    def apply_delivery_receipt(self, callback: StatusCallback) -> ReconcileResult:
        """Carrier delivery receipt: only the delivered transition applies."""
        return self._reconcile(callback, allowed_rules=DELIVERY_RECEIPT_RULES)

    def _reconcile(
        self,
        callback: StatusCallback,
        allowed_rules: Optional[frozenset[TransitionRule]],
    ) -> ReconcileResult:
        sid = callback.sid
        try:
            for attempt in range(1, self.max_write_attempts + 1):
                record = self.repository.get_by_sms_message_id(sid)
                if record is None:
                    logger.warning("No ReviewRequest found for MessageSid", extra={"message_sid": sid})
                    return ReconcileResult(ReconcileOutcome.NOT_TRACKED)

                try:
                    transition = self._write(record, callback, allowed_rules)
                except StaleWriteError:
                    logger.info(
                        "Concurrent update on review request; re-reading",
                        extra={"message_sid": sid, "request_id": record["id"], "attempt": attempt},
                    )
                    continue

                logger.info(
                    "ReviewRequest updated",
                    extra={
                        "request_id": record["id"],
                        "message_sid": sid,
                        "rule": transition.rule.value,
                        "changed": transition.changed,
                        "app_status": transition.status,
                        "sms_status": transition.sms_status,
                        "sms_error_code": transition.sms_error_code,
                    },
                )
                return ReconcileResult(ReconcileOutcome.UPDATED, record["id"], transition)
        except OperationalError as exc:
            raise TransientPersistenceError(f"Database unavailable: {exc}") from exc

        raise TransientPersistenceError(
            f"Review request for {sid} kept changing after {self.max_write_attempts} attempts"
        )

    def _write(
        self,
        record: dict,
        callback: StatusCallback,
        allowed_rules: Optional[frozenset[TransitionRule]],
    ) -> Transition:
        now = self.clock()
        current = CurrentState(
            status=record.get("status"),
            sent_at=record.get("sent_at"),
            delivered_at=record.get("delivered_at"),
            error_message=record.get("error_message"),
            sms_error_code=record.get("sms_error_code"),
        )
        transition = resolve_transition(
            current,
            callback.status,
            now=now,
            error_code=callback.error_code,
            error_text=callback.error_message,
            allowed_rules=allowed_rules,
        )

        written = self.repository.compare_and_set_status(
            record["id"],
            record["version"],
            status=transition.status,
            sms_status=transition.sms_status,
            sms_error_code=transition.sms_error_code,
            error_message=transition.error_message,
            sent_at=transition.sent_at,
            delivered_at=transition.delivered_at,
            updated_at=now,
        )
        if not written:
            raise StaleWriteError(f"review request {record['id']} changed since version {record['version']}")
        return transition
