"""
SQLAlchemy models for the payments API.

All models are re-exported here so that ``Base.metadata`` knows every table.
"""

from .base import Base, TimestampMixin
from .log_entry import LogEntry
from .notification import Notification
from .order import Order
from .order_mutex import OrderMutex
from .payment import Payment, PaymentSource, RedirectChallenge

__all__ = [
    "Base",
    "TimestampMixin",
    "Order",
    "Payment",
    "PaymentSource",
    "RedirectChallenge",
    "Notification",
    "LogEntry",
    "OrderMutex",
]
