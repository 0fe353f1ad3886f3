"""
Payment log entries.

Every gateway call, applied notification and manual step leaves exactly one
append-only LogEntry. The caller owns the transaction.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from shared.config.constants import LogEntryKind
from payments_api.models import LogEntry, Notification, Payment
from .gateway import GatewayResponse


def record_log_entry(
    db: Session,
    *,
    payment: Payment | None,
    kind: str,
    success: bool,
    message: str,
    details: dict[str, Any] | None = None,
    notification: Notification | None = None,
) -> LogEntry:
    entry = LogEntry(
        payment_id=payment.id if payment is not None else None,
        notification_id=notification.id if notification is not None else None,
        kind=kind,
        success=success,
        message=message,
        details=details or {},
    )
    db.add(entry)
    return entry


def record_response(db: Session, payment: Payment, response: GatewayResponse) -> LogEntry:
    """Log the immediate outcome of a gateway call."""
    return record_log_entry(
        db,
        payment=payment,
        kind=LogEntryKind.GATEWAY,
        success=response.success,
        message=response.message,
        details=response.params,
    )
