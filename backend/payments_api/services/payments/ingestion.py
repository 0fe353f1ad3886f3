"""
Notification ingestion: store, lock, apply, acknowledge.

    receive(fields)
      -> parse            malformed          -> REFUSED
      -> store.insert     already applied    -> DUPLICATE (acknowledged)
                          stored, unapplied  -> apply again below
      -> with_lock(merchantReference)
           applied meanwhile                 -> DUPLICATE
           NotificationProcessor.process     -> ACCEPTED
      LockFailed                             -> REFUSED (provider retries)

The notification is committed before the lock is requested, so a refused
delivery loses nothing: the provider's redelivery or the sweeper applies it.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import ValidationError
from sqlalchemy.orm import Session

from shared.config.constants import IngressReply
from shared.config.logging import notification_logger as logger
from shared.infrastructure.correlation import notification_scope
from shared.utils.schemas import NotificationInput
from payments_api.models import Notification
from .exceptions import DuplicateNotification, LockFailed
from .notification_processor import NotificationProcessor
from .notification_store import NotificationStore
from .order_mutex import OrderMutex


class IngestOutcome(str, Enum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    REFUSED = "refused"

    @property
    def acknowledged(self) -> bool:
        return self is not IngestOutcome.REFUSED

    @property
    def reply(self) -> str:
        """Body the provider reads to decide whether to redeliver."""
        return IngressReply.ACCEPTED if self.acknowledged else IngressReply.REFUSED


class NotificationIngestionService:
    """Idempotent receiver for provider notifications."""

    def __init__(self, db: Session, mutex: OrderMutex):
        self.db = db
        self.mutex = mutex
        self.store = NotificationStore(db)

    def receive(self, fields: Mapping[str, Any]) -> IngestOutcome:
        """Ingest one notification given as form fields or a JSON item."""
        try:
            data = NotificationInput.from_fields(fields)
        except ValidationError as e:
            logger.warning(
                "Malformed notification refused",
                errors=[err["loc"] for err in e.errors()],
                psp_reference=fields.get("pspReference"),
            )
            return IngestOutcome.REFUSED
        return self.ingest(data)

    def receive_batch(self, payload: Mapping[str, Any]) -> IngestOutcome:
        """
        Ingest a JSON ``notificationItems`` batch.

        Acknowledged only if no item was refused; the provider then
        redelivers the whole batch and applied items come back as duplicates.
        """
        items = payload.get("notificationItems")
        if not isinstance(items, list) or not items:
            logger.warning("Notification batch without notificationItems refused")
            return IngestOutcome.REFUSED

        outcomes = []
        for item in items:
            fields = item.get("NotificationRequestItem", item) if isinstance(item, Mapping) else {}
            outcomes.append(self.receive(fields))

        if any(outcome is IngestOutcome.REFUSED for outcome in outcomes):
            return IngestOutcome.REFUSED
        return IngestOutcome.ACCEPTED

    def ingest(self, data: NotificationInput) -> IngestOutcome:
        try:
            record = self.store.insert(data)
        except DuplicateNotification as dup:
            record = dup.existing
            if self.store.is_applied(record):
                return IngestOutcome.DUPLICATE
            logger.info(
                "Redelivery of an unapplied notification, applying now",
                notification_id=record.id,
            )
        return self.apply(record)

    def apply(self, record: Notification) -> IngestOutcome:
        """Apply a stored notification under its order's mutex."""
        with notification_scope(record.psp_reference):
            return self._apply_locked(record)

    def _apply_locked(self, record: Notification) -> IngestOutcome:
        processor = NotificationProcessor(self.db)

        def locked() -> IngestOutcome:
            if self.store.is_applied(record):
                return IngestOutcome.DUPLICATE
            if processor.process(record) is None:
                return IngestOutcome.DUPLICATE
            return IngestOutcome.ACCEPTED

        try:
            return self.mutex.with_lock(record.merchant_reference, locked)
        except LockFailed:
            logger.warning(
                "Notification deferred - order is locked",
                notification_id=record.id,
                merchant_reference=record.merchant_reference,
            )
            return IngestOutcome.REFUSED
        except Exception as e:
            # Left unapplied; the provider redelivers or the sweeper picks it up
            self.db.rollback()
            logger.error(
                "Notification processing failed",
                notification_id=record.id,
                error=str(e),
                exc_info=True,
            )
            return IngestOutcome.REFUSED
