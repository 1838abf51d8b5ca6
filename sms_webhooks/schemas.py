"""Request/response shapes for the SMS webhook endpoints."""

from __future__ import annotations

from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sms_webhooks.errors import MissingParameterError
from sms_webhooks.utils.delivery_status import (
    STATUS_FIELDS,
    extract_raw_status,
    normalize_delivery_status,
)


class StatusCallback(BaseModel):
    """Twilio status callback form body.

    Only the fields below are read; Twilio adds others (ApiVersion,
    AccountSid, RawDlrDoneDate, ...) which are ignored. Signature checks
    always run over the full, untyped form.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    message_sid: Optional[str] = Field(None, alias="MessageSid")
    sms_sid: Optional[str] = Field(None, alias="SmsSid")
    message_status: Optional[str] = Field(None, alias="MessageStatus")
    sms_status: Optional[str] = Field(None, alias="SmsStatus")
    to: Optional[str] = Field(None, alias="To")
    from_: Optional[str] = Field(None, alias="From")
    error_code: Optional[str] = Field(None, alias="ErrorCode")
    error_message: Optional[str] = Field(None, alias="ErrorMessage")

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @property
    def sid(self) -> Optional[str]:
        return self.message_sid or self.sms_sid

    @property
    def raw_status(self) -> Optional[str]:
        return extract_raw_status({"MessageStatus": self.message_status, "SmsStatus": self.sms_status})

    @property
    def status(self) -> str:
        """Normalized provider status (``""`` when missing)."""
        return normalize_delivery_status(self.raw_status)

    @classmethod
    def from_form(cls, params: Mapping[str, str]) -> "StatusCallback":
        """Build from form params; raises MissingParameterError without SID or status."""
        callback = cls.model_validate(dict(params))
        missing = []
        if not callback.sid:
            missing.append("MessageSid")
        if not callback.status:
            missing.append("/".join(STATUS_FIELDS))
        if missing:
            raise MissingParameterError(missing)
        return callback


class WebhookConfigResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status_url: str = Field(alias="statusUrl")
    delivery_url: str = Field(alias="deliveryUrl")
    validate_signature: bool = Field(alias="validateSignature")
    auth_mode: str = Field(alias="authMode")
    auth_token_source: str = Field(alias="authTokenSource")
    supported_events: list[str] = Field(alias="supportedEvents")


class WebhookHealthResponse(BaseModel):
    status: str
    service: str
    timestamp: str
