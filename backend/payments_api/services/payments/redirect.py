"""
Shopper return from the hosted payment page.

The browser redirect races with the AUTHORISATION notification for the same
order, so it takes the same order mutex before touching payments.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import urlencode

from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.constants import (
    AuthResult,
    OrderState,
    PaymentMethodType,
    PaymentState,
    requires_manual_refund,
)
from shared.config.logging import checkout_logger as logger
from shared.security.request_signing import MerchantSignature
from payments_api.models import Order, Payment, PaymentSource
from .exceptions import InvalidSignature, OrderNotFound
from .notification_store import NotificationStore
from .order_mutex import OrderMutex
from .payment_actions import PaymentActions
from .state_machine import PaymentEvent, apply_event

HOSTED_METHOD_TYPES = (PaymentMethodType.HOSTED_PAGE, PaymentMethodType.MANUAL_REFUND_ONLY)


@dataclass
class RedirectResult:
    order_number: str
    auth_result: str
    payment_id: int | None
    redirect_url: str

    @property
    def successful(self) -> bool:
        return self.auth_result in AuthResult.SUCCESSFUL


class RedirectReturnService:
    """Finalize checkout when the shopper comes back from the hosted page."""

    def __init__(
        self,
        db: Session,
        mutex: OrderMutex,
        actions: PaymentActions,
        signature: MerchantSignature,
        storefront_url: str,
    ):
        self.db = db
        self.mutex = mutex
        self.actions = actions
        self.signature = signature
        self.storefront_url = storefront_url.rstrip("/")

    def complete(self, params: Mapping[str, str]) -> RedirectResult:
        """
        Verify and apply a redirect return.

        Raises:
            InvalidSignature: merchantSig is missing or wrong
            OrderNotFound: merchantReference names no order
            LockFailed: the order stayed locked past the timeout
        """
        if not self.signature.verify(params):
            raise InvalidSignature("merchantSig does not match the redirect parameters")

        number = params.get("merchantReference") or ""
        order = self.db.scalar(select(Order).where(Order.number == number))
        if order is None:
            raise OrderNotFound(number)

        auth_result = (params.get("authResult") or "").upper()

        with self.mutex.hold(order.number):
            self.db.refresh(order)
            if auth_result in AuthResult.SUCCESSFUL:
                payment = self._authorised(order, params)
            else:
                payment = self._refused(order, auth_result)

        result = RedirectResult(
            order_number=order.number,
            auth_result=auth_result,
            payment_id=payment.id if payment else None,
            redirect_url=self._return_url(order, auth_result),
        )
        logger.info(
            "Shopper returned from hosted payment page",
            order=order.number,
            auth_result=auth_result,
            payment_id=result.payment_id,
        )
        return result

    # =========================================================================
    # Outcomes
    # =========================================================================

    def _authorised(self, order: Order, params: Mapping[str, str]) -> Payment:
        psp_reference = params.get("pspReference") or None
        payment = self._open_hosted_payment(order, psp_reference)

        if payment is None:
            method = params.get("paymentMethod")
            manual = requires_manual_refund(method)
            payment = self.actions.start_attempt(
                order,
                PaymentMethodType.MANUAL_REFUND_ONLY if manual else PaymentMethodType.HOSTED_PAGE,
                order.total_cents,
                source=PaymentSource(payment_method=method, requires_manual_refund=manual),
            )

        if payment.response_code is None:
            payment.response_code = psp_reference or self._notified_reference(order)

        # The notification may already have moved it further
        if payment.state in (PaymentState.CHECKOUT, PaymentState.PENDING):
            apply_event(payment, PaymentEvent.START_PROCESSING)

        order.state = OrderState.COMPLETE
        self.db.commit()
        return payment

    def _refused(self, order: Order, auth_result: str) -> Payment | None:
        payment = self._open_hosted_payment(order, None)
        if payment is not None and payment.state in PaymentState.OPEN:
            apply_event(payment, PaymentEvent.FAIL)
            payment.failure_reason = f"Shopper returned with {auth_result or 'no result'}"
        order.state = OrderState.PAYMENT
        self.db.commit()
        return payment

    # =========================================================================
    # Helpers
    # =========================================================================

    def _open_hosted_payment(self, order: Order, psp_reference: str | None) -> Payment | None:
        """Newest hosted page payment that this redirect can finalize."""
        candidates = self.db.scalars(
            select(Payment)
            .where(
                Payment.order_id == order.id,
                Payment.method_type.in_(HOSTED_METHOD_TYPES),
                Payment.state.not_in([PaymentState.FAILED, PaymentState.VOID]),
            )
            .order_by(Payment.id.desc())
        ).all()
        for payment in candidates:
            if payment.response_code is None or payment.response_code == psp_reference:
                return payment
        return None

    def _notified_reference(self, order: Order) -> str | None:
        """pspReference of an AUTHORISATION that arrived before the shopper did."""
        notification = NotificationStore(self.db).find_successful_authorisation(order.number)
        return notification.psp_reference if notification else None

    def _return_url(self, order: Order, auth_result: str) -> str:
        if auth_result in AuthResult.SUCCESSFUL:
            return f"{self.storefront_url}/checkout/complete?{urlencode({'order': order.number})}"
        query = urlencode({"order": order.number, "payment_error": auth_result or "ERROR"})
        return f"{self.storefront_url}/checkout/payment?{query}"
