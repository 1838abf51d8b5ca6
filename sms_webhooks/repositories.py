# repositories.py
from datetime import datetime
from typing import Any, Optional
import logging

from sqlalchemy import BigInteger, DateTime, Integer, String, Text, bindparam, text

from .appdb import get_session
from .time_utils import ensure_aware, now_utc

logger = logging.getLogger(__name__)

_REVIEW_REQUEST_COLUMNS = {
    "id": BigInteger(),
    "sms_message_id": String(),
    "status": String(),
    "sms_status": String(),
    "sms_error_code": String(),
    "error_message": Text(),
    "sent_at": DateTime(timezone=True),
    "delivered_at": DateTime(timezone=True),
    "updated_at": DateTime(timezone=True),
    "version": Integer(),
}


class ReviewRequestRepository:
    """Owns the status columns of the review_requests table."""

    def get_by_sms_message_id(self, sms_message_id: str) -> Optional[dict[str, Any]]:
        """
        Find the review request tracked under a Twilio Message SID.
        Returns a dict of the status columns, or None when the SID is unknown.
        Raises MultipleResultsFound if the unique index is missing and duplicates exist.
        """
        if not sms_message_id:
            return None

        query = text(
            """
            SELECT id, sms_message_id, status, sms_status, sms_error_code,
                   error_message, sent_at, delivered_at, updated_at, version
            FROM review_requests
            WHERE sms_message_id = :sms_message_id
            LIMIT 2
            """
        ).columns(**_REVIEW_REQUEST_COLUMNS)

        with get_session() as session:
            row = session.execute(query, {"sms_message_id": sms_message_id}).mappings().one_or_none()
            if row is None:
                return None

            record = dict(row)
            for column in ("sent_at", "delivered_at", "updated_at"):
                record[column] = ensure_aware(record[column])
            return record

    def compare_and_set_status(
        self,
        request_id: int,
        expected_version: int,
        *,
        status: str,
        sms_status: str,
        sms_error_code: Optional[str],
        error_message: Optional[str],
        sent_at: Optional[datetime],
        delivered_at: Optional[datetime],
        updated_at: Optional[datetime] = None,
    ) -> bool:
        """
        Write the status fields only if the row still carries expected_version.
        Returns True when the row was updated, False when another writer got there first.
        """
        query = text(
            """
            UPDATE review_requests
            SET status = :status,
                sms_status = :sms_status,
                sms_error_code = :sms_error_code,
                error_message = :error_message,
                sent_at = :sent_at,
                delivered_at = :delivered_at,
                updated_at = :updated_at,
                version = version + 1
            WHERE id = :request_id AND version = :expected_version
            """
        ).bindparams(
            bindparam("sent_at", type_=DateTime(timezone=True)),
            bindparam("delivered_at", type_=DateTime(timezone=True)),
            bindparam("updated_at", type_=DateTime(timezone=True)),
        )

        with get_session() as session:
            result = session.execute(
                query,
                {
                    "request_id": request_id,
                    "expected_version": expected_version,
                    "status": status,
                    "sms_status": sms_status,
                    "sms_error_code": sms_error_code,
                    "error_message": error_message,
                    "sent_at": sent_at,
                    "delivered_at": delivered_at,
                    "updated_at": updated_at or now_utc(),
                },
            )
            return result.rowcount == 1
