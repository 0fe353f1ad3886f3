"""
Shared Pydantic schemas used across the application.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.config.constants import PaymentMethodType


# =============================================================================
# Common Types
# =============================================================================

PaymentStateName = Literal["checkout", "processing", "pending", "completed", "failed", "void"]
LogEntryKindName = Literal["gateway", "notification", "manual"]

ADDITIONAL_DATA_PREFIX = "additionalData."


# =============================================================================
# Notification Schemas
# =============================================================================


class NotificationInput(BaseModel):
    """
    One provider notification, as posted form-encoded or as a JSON
    NotificationRequestItem.

    Fields the model does not know are folded into ``additional_data`` by
    ``from_fields`` so nothing the provider sends is lost from the audit record.
    """

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    psp_reference: str = Field(alias="pspReference", min_length=1, max_length=64)
    original_reference: str | None = Field(default=None, alias="originalReference", max_length=64)
    merchant_reference: str = Field(alias="merchantReference", min_length=1, max_length=128)
    event_code: str = Field(alias="eventCode", min_length=1, max_length=64)
    success: bool
    value: int | None = None
    currency: str | None = Field(default=None, max_length=3)
    event_date: datetime | None = Field(default=None, alias="eventDate")
    reason: str | None = None
    payment_method: str | None = Field(default=None, alias="paymentMethod")
    operations: str | None = None
    merchant_account_code: str | None = Field(default=None, alias="merchantAccountCode")
    live: bool = False
    additional_data: dict[str, str] = Field(default_factory=dict, alias="additionalData")

    @field_validator(
        "original_reference", "value", "currency", "event_date", "reason",
        "payment_method", "operations", "merchant_account_code",
        mode="before",
    )
    @classmethod
    def blank_as_none(cls, value: Any) -> Any:
        """The provider sends empty strings for absent optional fields."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("event_code", mode="after")
    @classmethod
    def normalize_event_code(cls, value: str) -> str:
        return value.upper()

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "NotificationInput":
        """
        Build from flat form fields or a JSON item.

        Form posts flatten metadata as ``additionalData.<key>`` and send the
        amount as ``value``/``currency``; JSON items nest both.
        """
        data: dict[str, Any] = {}
        additional: dict[str, str] = {}
        known = {info.alias or name for name, info in cls.model_fields.items()} | set(cls.model_fields)

        for key, raw in fields.items():
            if key.startswith(ADDITIONAL_DATA_PREFIX):
                additional[key[len(ADDITIONAL_DATA_PREFIX):]] = str(raw)
            elif key == "additionalData" and isinstance(raw, Mapping):
                additional.update({k: str(v) for k, v in raw.items()})
            elif key == "amount" and isinstance(raw, Mapping):
                data["value"] = raw.get("value")
                data["currency"] = raw.get("currency")
            elif key in known:
                data[key] = raw
            elif raw is not None:
                additional[key] = str(raw)

        data["additionalData"] = additional
        return cls.model_validate(data)


# =============================================================================
# Payment Schemas
# =============================================================================


class LogEntryOutput(BaseModel):
    """Audit log entry for a payment."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: LogEntryKindName
    success: bool
    message: str
    notification_id: int | None = None
    created_at: datetime | None = None


class PaymentOutput(BaseModel):
    """Payment information."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    method_type: PaymentMethodType
    state: PaymentStateName
    amount_cents: int
    credited_cents: int
    currency: str
    response_code: str | None = None
    failure_reason: str | None = None


class PaymentDetailOutput(PaymentOutput):
    """Payment with its audit trail."""

    order_number: str
    log_entries: list[LogEntryOutput] = Field(default_factory=list)


class CreditRequest(BaseModel):
    """Request body for a refund."""

    amount_cents: int = Field(gt=0)


class PaymentActionResponse(BaseModel):
    """Result of a synchronous payment action."""

    payment_id: int
    action: str
    state: PaymentStateName
    message: str
    redirect_url: str | None = None


class ErrorResponse(BaseModel):
    """Error body produced by AppException handlers."""

    detail: str
