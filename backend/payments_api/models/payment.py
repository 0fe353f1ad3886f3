"""
Payment Models: Payment, PaymentSource, RedirectChallenge.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import PaymentMethodType, PaymentState
from .base import Base, TimestampMixin

if TYPE_CHECKING:
    from .log_entry import LogEntry
    from .order import Order

# SQLite only auto-increments INTEGER primary keys
IdType = BigInteger().with_variant(Integer, "sqlite")


class PaymentSource(TimestampMixin, Base):
    """
    Payment-method-specific detail behind a payment.

    For stored cards it carries the gateway's recurring detail reference and
    the card profile shown to the shopper; for hosted-page methods such as
    bank transfers it may flag that refunds have to be made by hand.
    """

    __tablename__ = "payment_source"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(64))  # amex, visa, sofort, ...
    requires_manual_refund: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Stored card profile
    stored_card_reference: Mapped[Optional[str]] = mapped_column(String(128))
    card_type: Mapped[Optional[str]] = mapped_column(String(32))
    last_digits: Mapped[Optional[str]] = mapped_column(String(4))
    expiry_month: Mapped[Optional[str]] = mapped_column(String(2))
    expiry_year: Mapped[Optional[str]] = mapped_column(String(4))
    holder_name: Mapped[Optional[str]] = mapped_column(Text)


class Payment(TimestampMixin, Base):
    """
    One attempt to charge an order through a payment method.

    State moves forward only: checkout -> processing -> completed|failed -> void
    (pending sits beside processing while the provider waits on the shopper).
    ``response_code`` holds the provider reference that later notifications
    use to find this payment.
    """

    __tablename__ = "payment"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("shop_order.id"), nullable=False, index=True
    )
    source_id: Mapped[Optional[int]] = mapped_column(
        IdType, ForeignKey("payment_source.id"), index=True
    )
    method_type: Mapped[PaymentMethodType] = mapped_column(
        SQLEnum(PaymentMethodType, name="payment_method_type", native_enum=False),
        default=PaymentMethodType.HOSTED_PAGE,
        nullable=False,
    )
    state: Mapped[str] = mapped_column(
        String(16), default=PaymentState.CHECKOUT, nullable=False, index=True
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    credited_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    response_code: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text)

    order: Mapped["Order"] = relationship(back_populates="payments")
    source: Mapped[Optional["PaymentSource"]] = relationship()
    redirect_challenge: Mapped[Optional["RedirectChallenge"]] = relationship(
        back_populates="payment",
        uselist=False,
        cascade="all, delete-orphan",
    )
    log_entries: Mapped[list["LogEntry"]] = relationship(
        back_populates="payment",
        order_by="LogEntry.id",
    )

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="chk_payment_amount_non_negative"),
        CheckConstraint("credited_cents >= 0", name="chk_payment_credited_non_negative"),
        Index("ix_payment_order_state", "order_id", "state"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, order={self.order_id}, state={self.state}, "
            f"method={self.method_type.value}, response_code={self.response_code})>"
        )


class RedirectChallenge(TimestampMixin, Base):
    """
    Transient 3-D Secure redirect parameters for a payment.

    Deleted whenever checkout restarts for the order, so a stale challenge
    can never be replayed against a newer payment attempt.
    """

    __tablename__ = "redirect_challenge"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    payment_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("payment.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    md: Mapped[str] = mapped_column(Text, nullable=False)
    pa_request: Mapped[str] = mapped_column(Text, nullable=False)
    issuer_url: Mapped[str] = mapped_column(Text, nullable=False)
    psp_reference: Mapped[Optional[str]] = mapped_column(String(64))

    payment: Mapped["Payment"] = relationship(back_populates="redirect_challenge")
