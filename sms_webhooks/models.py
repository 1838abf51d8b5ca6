"""SQLAlchemy ORM model for the review request delivery-tracking table."""
from __future__ import annotations

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text, func
from sqlalchemy.orm import declarative_base

from sms_webhooks.time_utils import now_utc

Base = declarative_base()


class ReviewRequest(Base):
    """Outbound review-request SMS.

    Rows are created by the sending subsystem; the webhook service only
    touches the status-related columns.
    """

    __tablename__ = "review_requests"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    sms_message_id = Column(String(64), unique=True, index=True)
    recipient_phone = Column(String(32))
    status = Column(String(32), nullable=False, default="PENDING", server_default="PENDING")
    sms_status = Column(String(32))
    sms_error_code = Column(String(16))
    error_message = Column(Text)
    sent_at = Column(DateTime(timezone=True))
    delivered_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True))
    version = Column(Integer, nullable=False, default=0, server_default="0")
