"""
OrderMutex Model: one row per order currently locked by the database backend.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class OrderMutex(Base):
    """
    Held lock on an order.

    The unique order_key makes acquisition a single atomic INSERT; the row is
    deleted on release. acquired_at lets a later caller expire rows left
    behind by a crashed worker.
    """

    __tablename__ = "order_mutex"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    order_key: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    owner: Mapped[str] = mapped_column(String(64), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<OrderMutex(order_key={self.order_key}, owner={self.owner})>"
