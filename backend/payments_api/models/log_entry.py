"""
LogEntry Model: append-only audit trail of payment interactions.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .notification import Notification
    from .payment import Payment

IdType = BigInteger().with_variant(Integer, "sqlite")


class LogEntry(Base):
    """
    Outcome of one gateway call, notification application or manual step.

    notification_id is unique: at most one entry per notification, which
    makes "applied exactly once" a storage invariant. payment_id is empty
    when a notification could not be matched to any payment.
    """

    __tablename__ = "payment_log_entry"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    payment_id: Mapped[Optional[int]] = mapped_column(
        IdType, ForeignKey("payment.id"), index=True
    )
    notification_id: Mapped[Optional[int]] = mapped_column(
        IdType, ForeignKey("adyen_notification.id"), unique=True
    )
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    payment: Mapped[Optional["Payment"]] = relationship(back_populates="log_entries")
    notification: Mapped[Optional["Notification"]] = relationship()

    def __repr__(self) -> str:
        return (
            f"<LogEntry(id={self.id}, payment={self.payment_id}, kind={self.kind}, "
            f"success={self.success})>"
        )
