"""
Order Model.

Orders are owned by the storefront; this service only reads them to
resolve notifications and uses the order number as the mutex key.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import OrderState
from .base import Base, TimestampMixin

if TYPE_CHECKING:
    from .payment import Payment


class Order(TimestampMixin, Base):
    """
    Aggregate root owning one or more payment attempts.
    """

    __tablename__ = "shop_order"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    # merchantReference in provider messages
    number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    state: Mapped[str] = mapped_column(Text, default=OrderState.PAYMENT, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    total_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Identifies the shopper's stored recurring contracts at the gateway
    shopper_reference: Mapped[Optional[str]] = mapped_column(String(128))

    payments: Mapped[list["Payment"]] = relationship(
        back_populates="order",
        order_by="Payment.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, number={self.number}, state={self.state})>"
