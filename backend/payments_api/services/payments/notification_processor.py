"""
Applies a stored notification to the payment it refers to.

Must be called while holding the order mutex for the notification's
merchantReference. Each call makes at most one payment state transition and
writes exactly one LogEntry referencing the notification; that entry is
what marks the notification as applied.

Payments are only looked up within the order named by merchantReference,
the order whose mutex the caller holds. Resolution order:
1. originalReference: the payment whose response_code equals it
   (follow-up events such as CAPTURE or REFUND of an authorisation)
2. pspReference: the payment whose response_code equals it
3. merchantReference: the order's newest payment that has no
   response_code yet and is neither failed nor void (first authorisation,
   before or racing with the redirect return)

Event handling:
- unknown event code               -> logged, no change
- known event with success=false   -> failed, with the provider's reason
- AUTHORISATION                    -> sets response_code if unset,
                                      checkout/pending -> processing
- CAPTURE                          -> completed
- CAPTURE_FAILED                   -> failed
- CANCELLATION, REFUND,
  CANCEL_OR_REFUND                 -> void, amount added to credited_cents
- PENDING                          -> checkout -> pending

A transition the payment's state does not allow is logged as an anomaly
and swallowed; the notification still counts as applied.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shared.config.constants import EventCode, LogEntryKind, PaymentState
from shared.config.logging import notification_logger as logger
from payments_api.models import LogEntry, Notification, Order, Payment
from .audit import record_log_entry
from .exceptions import InvalidTransition
from .state_machine import PaymentEvent, apply_event

CREDIT_EVENTS = frozenset({EventCode.CANCELLATION, EventCode.REFUND, EventCode.CANCEL_OR_REFUND})


class NotificationProcessor:
    """Resolve and apply notifications to payments."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Resolution
    # =========================================================================

    def _by_response_code(self, order_number: str, reference: str) -> Payment | None:
        return self.db.scalar(
            select(Payment)
            .join(Order, Payment.order_id == Order.id)
            .where(Order.number == order_number, Payment.response_code == reference)
            .order_by(Payment.id.desc())
            .limit(1)
        )

    def resolve_payment(self, notification: Notification) -> Payment | None:
        if notification.original_reference:
            payment = self._by_response_code(
                notification.merchant_reference, notification.original_reference
            )
            if payment is not None:
                return payment

        payment = self._by_response_code(notification.merchant_reference, notification.psp_reference)
        if payment is not None:
            return payment

        return self.db.scalar(
            select(Payment)
            .join(Order, Payment.order_id == Order.id)
            .where(
                Order.number == notification.merchant_reference,
                Payment.response_code.is_(None),
                Payment.state.not_in([PaymentState.FAILED, PaymentState.VOID]),
            )
            .order_by(Payment.id.desc())
            .limit(1)
        )

    # =========================================================================
    # Application
    # =========================================================================

    def process(self, notification: Notification) -> LogEntry | None:
        """
        Apply ``notification`` and commit.

        Returns the log entry, or None when another worker already applied it.
        """
        payment = self.resolve_payment(notification)
        details: dict[str, Any] = {
            "psp_reference": notification.psp_reference,
            "original_reference": notification.original_reference,
            "merchant_reference": notification.merchant_reference,
            "event_code": notification.event_code,
            "success": notification.success,
            "value": notification.value,
            "currency": notification.currency,
        }

        if payment is None:
            message = (
                f"{notification.event_code} for {notification.merchant_reference} "
                "did not match any payment"
            )
            logger.warning(
                "Unmatched notification",
                notification_id=notification.id,
                psp_reference=notification.psp_reference,
                merchant_reference=notification.merchant_reference,
            )
        else:
            previous_state = payment.state
            details["payment_state_before"] = previous_state
            try:
                message = self._apply(payment, notification)
            except InvalidTransition as e:
                message = f"Ignored {notification.event_code}: {e}"
                details["anomaly"] = True
                if not notification.success:
                    details["reason"] = notification.failure_reason
                logger.warning(
                    "Notification does not fit payment state",
                    notification_id=notification.id,
                    payment_id=payment.id,
                    state=previous_state,
                    event_code=notification.event_code,
                    success=notification.success,
                )
            details["payment_state_after"] = payment.state

        entry = record_log_entry(
            self.db,
            payment=payment,
            kind=LogEntryKind.NOTIFICATION,
            success=notification.success,
            message=message,
            details=details,
            notification=notification,
        )
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info("Notification already applied", notification_id=notification.id)
            return None

        logger.info(
            "Notification applied",
            notification_id=notification.id,
            payment_id=payment.id if payment else None,
            event_code=notification.event_code,
            state=payment.state if payment else None,
        )
        return entry

    def _apply(self, payment: Payment, notification: Notification) -> str:
        """Mutate ``payment`` in memory. Returns the log message."""
        event = EventCode.parse(notification.event_code)

        if event is None:
            return f"Unhandled event code {notification.event_code}; no change"

        if not notification.success:
            reason = notification.failure_reason
            apply_event(payment, PaymentEvent.FAIL)
            payment.failure_reason = reason
            return f"{notification.event_code} failed: {reason}"

        if event is EventCode.AUTHORISATION:
            if payment.response_code is None:
                payment.response_code = notification.psp_reference
            if payment.state in (PaymentState.CHECKOUT, PaymentState.PENDING):
                apply_event(payment, PaymentEvent.START_PROCESSING)
            return f"Authorised {notification.psp_reference}"

        if event is EventCode.CAPTURE:
            apply_event(payment, PaymentEvent.COMPLETE)
            return f"Captured {self._amount(notification)}"

        if event is EventCode.CAPTURE_FAILED:
            apply_event(payment, PaymentEvent.FAIL)
            payment.failure_reason = notification.failure_reason
            return f"Capture failed: {notification.failure_reason}"

        if event in CREDIT_EVENTS:
            # A further partial refund on an already void payment still adds to the credit
            if not (event is EventCode.REFUND and payment.state == PaymentState.VOID):
                apply_event(payment, PaymentEvent.VOID)
            payment.credited_cents += notification.value or 0
            return f"{event.value.capitalize()} of {self._amount(notification)}"

        # PENDING
        if payment.state == PaymentState.CHECKOUT:
            apply_event(payment, PaymentEvent.PEND)
        return "Pending shopper action"

    @staticmethod
    def _amount(notification: Notification) -> str:
        if notification.value is None:
            return "unknown amount"
        return f"{notification.value} {notification.currency or ''}".strip()
