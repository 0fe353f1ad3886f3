"""
Synchronous payment actions (authorize, capture, cancel, credit, purchase).

The gateway only acknowledges that a modification request was received; the
real outcome arrives later as a notification. So each action:

1. moves the payment to ``processing`` inside a local transaction,
2. calls the gateway through the payment method's strategy,
3. commits ``processing`` when the request was sent, so the later
   notification finds the payment ready to move on, or rolls back to the
   prior state when the call itself failed,
4. always records a log entry with the immediate outcome,
5. raises GatewayError to the caller on failure.

Completed payments keep their state while a credit or cancel is pending;
the REFUND/CANCELLATION notification voids them.

Callers must hold the order mutex; ``run_locked_action`` does that.
"""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload

from shared.config.constants import (
    MANUAL_REFUND_LOG_MESSAGE,
    LogEntryKind,
    PaymentMethodType,
    PaymentState,
)
from shared.config.logging import gateway_logger as logger
from payments_api.models import Order, Payment, PaymentSource, RedirectChallenge
from .audit import record_log_entry, record_response
from .exceptions import GatewayError, PaymentNotFound
from .gateway import AdyenClient, GatewayResponse
from .order_mutex import OrderMutex
from .state_machine import PaymentEvent, apply_event, next_state
from .strategies import PaymentStrategy, build_strategies

ACTIONS = ("authorize", "capture", "cancel", "credit", "purchase")


class PaymentActions:
    """State machine adapter for synchronous, gateway-backed actions."""

    def __init__(
        self,
        db: Session,
        gateway: AdyenClient,
        strategies: dict[PaymentMethodType, PaymentStrategy] | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.strategies = strategies or build_strategies(gateway)

    def strategy_for(self, payment: Payment) -> PaymentStrategy:
        return self.strategies[payment.method_type]

    # =========================================================================
    # Actions
    # =========================================================================

    def authorize(self, payment: Payment) -> GatewayResponse:
        strategy = self.strategy_for(payment)
        response = self._process(payment, "authorize", lambda: strategy.authorize(payment))

        if response.success:
            lookup = strategy.after_authorize(payment)
            if lookup is not None:
                record_response(self.db, payment, lookup)
            self.db.commit()
        return response

    def capture(self, payment: Payment) -> GatewayResponse:
        strategy = self.strategy_for(payment)
        return self._process(payment, "capture", lambda: strategy.capture(payment))

    def cancel(self, payment: Payment) -> GatewayResponse | None:
        """Cancel or refund in full. Returns None when a manual refund was logged instead."""
        strategy = self.strategy_for(payment)
        if strategy.requires_manual_refund(payment):
            self._log_manual_refund(payment)
            return None
        return self._process(payment, "cancel", lambda: strategy.cancel(payment))

    def credit(self, payment: Payment, amount_cents: int) -> GatewayResponse:
        """
        Request a refund of ``amount_cents``.

        The amount is not validated against what was captured; callers do that.
        """
        strategy = self.strategy_for(payment)
        return self._process(payment, "credit", lambda: strategy.credit(payment, amount_cents))

    def purchase(self, payment: Payment) -> GatewayResponse:
        response = None
        for step in self.strategy_for(payment).purchase_steps:
            response = getattr(self, step)(payment)
            if response.redirect:
                return response
        return response

    # =========================================================================
    # New payment attempts
    # =========================================================================

    def start_attempt(
        self,
        order: Order,
        method_type: PaymentMethodType,
        amount_cents: int,
        source: PaymentSource | None = None,
    ) -> Payment:
        """
        Create a new payment for ``order`` in checkout.

        Redirect challenges of earlier attempts are deleted and attempts
        still in checkout are failed, so a stale 3-D Secure challenge can
        never complete a superseded payment.
        """
        payment_ids = select(Payment.id).where(Payment.order_id == order.id)
        self.db.execute(
            delete(RedirectChallenge).where(RedirectChallenge.payment_id.in_(payment_ids))
        )

        superseded = self.db.scalars(
            select(Payment).where(
                Payment.order_id == order.id,
                Payment.state == PaymentState.CHECKOUT,
            )
        ).all()
        for old in superseded:
            apply_event(old, PaymentEvent.FAIL)
            old.failure_reason = "Superseded by a new payment attempt"

        payment = Payment(
            order=order,
            method_type=method_type,
            amount_cents=amount_cents,
            currency=order.currency,
            source=source,
            state=PaymentState.CHECKOUT,
        )
        self.db.add(payment)
        self.db.commit()

        logger.info(
            "Payment attempt started",
            order=order.number,
            payment_id=payment.id,
            method=method_type.value,
            superseded=len(superseded),
        )
        return payment

    # =========================================================================
    # Internals
    # =========================================================================

    def _interim_state(self, payment: Payment, action: str) -> str:
        if action in ("cancel", "credit") and payment.state == PaymentState.COMPLETED:
            return PaymentState.COMPLETED
        return next_state(payment.state, PaymentEvent.START_PROCESSING, payment.id)

    def _process(
        self,
        payment: Payment,
        action: str,
        call: Callable[[], GatewayResponse],
    ) -> GatewayResponse:
        prior_state = payment.state
        # InvalidTransition surfaces before anything is written
        payment.state = self._interim_state(payment, action)
        self.db.flush()

        try:
            response = call()
        except GatewayError as e:
            response = GatewayResponse(success=False, message=e.message)
        except Exception:
            self.db.rollback()
            raise

        if response.success:
            strategy = self.strategy_for(payment)
            if not strategy.requires_gateway:
                outcome = strategy.local_outcome(action)
                if outcome is not None:
                    apply_event(payment, outcome)
            if action == "authorize" and response.psp_reference:
                payment.response_code = response.psp_reference
            record_response(self.db, payment, response)
            self.db.commit()
            logger.info(
                f"Payment {action} sent",
                payment_id=payment.id,
                from_state=prior_state,
                state=payment.state,
            )
            return response

        self.db.rollback()
        if response.redirect:
            self._store_redirect(payment, response)
        record_response(self.db, payment, response)
        self.db.commit()

        if response.redirect:
            logger.info("Payment requires 3-D Secure redirect", payment_id=payment.id)
            return response

        logger.warning(
            f"Payment {action} failed",
            payment_id=payment.id,
            state=payment.state,
            message=response.message,
        )
        raise GatewayError(response.message, response)

    def _store_redirect(self, payment: Payment, response: GatewayResponse) -> None:
        if payment.redirect_challenge is not None:
            self.db.delete(payment.redirect_challenge)
            self.db.flush()
        payment.redirect_challenge = RedirectChallenge(
            md=response.md or "",
            pa_request=response.pa_request or "",
            issuer_url=response.issuer_url or "",
            psp_reference=response.psp_reference,
        )

    def _log_manual_refund(self, payment: Payment) -> None:
        record_log_entry(
            self.db,
            payment=payment,
            kind=LogEntryKind.MANUAL,
            success=False,
            message=MANUAL_REFUND_LOG_MESSAGE,
        )
        self.db.commit()
        logger.info("Manual refund required", payment_id=payment.id, state=payment.state)


def load_payment(db: Session, payment_id: int) -> Payment:
    """Load a payment with its order, bypassing stale identity-map state."""
    payment = db.scalar(
        select(Payment)
        .where(Payment.id == payment_id)
        .options(selectinload(Payment.order), selectinload(Payment.source))
        .execution_options(populate_existing=True)
    )
    if payment is None:
        raise PaymentNotFound(payment_id)
    return payment


def run_locked_action(
    db: Session,
    mutex: OrderMutex,
    actions: PaymentActions,
    payment_id: int,
    action: str,
    amount_cents: int | None = None,
) -> tuple[Payment, GatewayResponse | None]:
    """
    Run ``action`` on a payment while holding its order's mutex.

    Raises:
        PaymentNotFound, LockFailed, InvalidTransition, GatewayError, UnsupportedAction
    """
    if action not in ACTIONS:
        raise ValueError(f"Unknown payment action: {action}")

    order_number = load_payment(db, payment_id).order.number

    def locked() -> tuple[Payment, GatewayResponse | None]:
        # Re-read under the lock; another request may have moved the payment
        payment = load_payment(db, payment_id)
        if action == "credit":
            return payment, actions.credit(payment, amount_cents or 0)
        return payment, getattr(actions, action)(payment)

    return mutex.with_lock(order_number, locked)
