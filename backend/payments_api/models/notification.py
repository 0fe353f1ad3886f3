"""
Notification Model.

Raw provider notifications, stored once and never modified. Whether a
notification has been applied is recorded by the LogEntry that references it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

IdType = BigInteger().with_variant(Integer, "sqlite")


class Notification(Base):
    """
    One inbound provider event.

    (psp_reference, event_code, success) is unique at the storage level so
    that two racing deliveries of the same event cannot both be stored.
    """

    __tablename__ = "adyen_notification"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    psp_reference: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    original_reference: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    merchant_reference: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    event_code: Mapped[str] = mapped_column(String(64), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    value: Mapped[Optional[int]] = mapped_column(Integer)
    currency: Mapped[Optional[str]] = mapped_column(String(3))
    event_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    reason: Mapped[Optional[str]] = mapped_column(Text)
    payment_method: Mapped[Optional[str]] = mapped_column(String(64))
    operations: Mapped[Optional[str]] = mapped_column(Text)
    merchant_account_code: Mapped[Optional[str]] = mapped_column(String(128))
    live: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    additional_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    __table_args__ = (
        UniqueConstraint(
            "psp_reference", "event_code", "success",
            name="uq_notification_psp_event_success",
        ),
    )

    @property
    def failure_reason(self) -> str:
        """Human-readable reason for an unsuccessful event."""
        data = self.additional_data or {}
        return (
            self.reason
            or data.get("refusalReasonRaw")
            or data.get("refusalReason")
            or "No reason given by the payment provider"
        )

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, psp={self.psp_reference}, "
            f"event={self.event_code}, success={self.success})>"
        )
