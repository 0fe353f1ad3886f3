"""
Deduplicated, append-only storage of provider notifications.

Deduplication relies on the (psp_reference, event_code, success) unique
constraint: the INSERT either succeeds or raises IntegrityError, and the
losing writer then loads the row the winner stored. There is no
check-then-insert window.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import exists, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shared.config.constants import EventCode
from shared.config.logging import notification_logger as logger
from shared.utils.schemas import NotificationInput
from payments_api.models import LogEntry, Notification
from .exceptions import DuplicateNotification


class NotificationStore:
    """Insert and query notification records."""

    def __init__(self, db: Session):
        self.db = db

    def insert(self, data: NotificationInput) -> Notification:
        """
        Durably store a notification and commit.

        Raises:
            DuplicateNotification: the same event is already stored; the
                exception carries the existing record.
        """
        record = Notification(
            psp_reference=data.psp_reference,
            original_reference=data.original_reference,
            merchant_reference=data.merchant_reference,
            event_code=data.event_code,
            success=data.success,
            value=data.value,
            currency=data.currency,
            event_date=data.event_date,
            reason=data.reason,
            payment_method=data.payment_method,
            operations=data.operations,
            merchant_account_code=data.merchant_account_code,
            live=data.live,
            additional_data=dict(data.additional_data),
        )
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.find(data.psp_reference, data.event_code, data.success)
            if existing is None:
                # Constraint violation that was not the dedup key
                raise
            logger.info(
                "Duplicate notification",
                notification_id=existing.id,
                psp_reference=data.psp_reference,
                event_code=data.event_code,
            )
            raise DuplicateNotification(existing)

        logger.info(
            "Notification stored",
            notification_id=record.id,
            psp_reference=record.psp_reference,
            event_code=record.event_code,
            success=record.success,
            merchant_reference=record.merchant_reference,
        )
        return record

    def find(self, psp_reference: str, event_code: str, success: bool) -> Notification | None:
        return self.db.scalar(
            select(Notification).where(
                Notification.psp_reference == psp_reference,
                Notification.event_code == event_code,
                Notification.success == success,
            )
        )

    def get(self, notification_id: int) -> Notification | None:
        return self.db.get(Notification, notification_id)

    def is_applied(self, notification: Notification) -> bool:
        """A notification is applied once a log entry references it."""
        return bool(
            self.db.scalar(
                select(exists().where(LogEntry.notification_id == notification.id))
            )
        )

    def list_unapplied(
        self,
        older_than_seconds: float = 0.0,
        limit: int = 50,
    ) -> list[Notification]:
        """Stored notifications with no log entry, oldest first."""
        stmt = (
            select(Notification)
            .where(~exists().where(LogEntry.notification_id == Notification.id))
            .order_by(Notification.id)
            .limit(limit)
        )
        if older_than_seconds > 0:
            cutoff = datetime.now(timezone.utc) - timedelta(seconds=older_than_seconds)
            stmt = stmt.where(Notification.created_at <= cutoff)
        return list(self.db.scalars(stmt))

    def count_unapplied(self) -> int:
        return self.db.scalar(
            select(func.count())
            .select_from(Notification)
            .where(~exists().where(LogEntry.notification_id == Notification.id))
        ) or 0

    def find_successful_authorisation(self, merchant_reference: str) -> Notification | None:
        """Most recent successful AUTHORISATION stored for an order."""
        return self.db.scalar(
            select(Notification)
            .where(
                Notification.merchant_reference == merchant_reference,
                Notification.event_code == EventCode.AUTHORISATION.value,
                Notification.success.is_(True),
            )
            .order_by(Notification.id.desc())
            .limit(1)
        )
