"""
Payment method strategies.

The payment state machine is generic; what differs per payment method is
which gateway call backs each action. Each PaymentMethodType maps to one
strategy with the same capability interface:

- HostedPageStrategy: authorised on the provider's hosted page before the
  payment exists here, so authorize is a no-op success.
- StoredCardStrategy: re-authorises a stored recurring contract and keeps
  the stored card profile in sync.
- ManualRefundOnlyStrategy: hosted-page methods (e.g. bank transfers) that
  cannot be refunded through the API; cancel is a manual step.
- LocalStrategy: methods that never touch the gateway (store credit, check).
"""

from __future__ import annotations

from shared.config.logging import gateway_logger as logger
from shared.config.constants import PaymentMethodType
from payments_api.models import Payment, PaymentSource
from .exceptions import GatewayError, UnsupportedAction
from .gateway import AdyenClient, GatewayResponse, stored_card_details
from .state_machine import PaymentEvent

HPP_AUTHORIZE_MESSAGE = "successful hpp payment"


class PaymentStrategy:
    """Gateway-backed behaviour shared by the Adyen payment methods."""

    method_type: PaymentMethodType
    # False for methods settled without the gateway; their actions reach a
    # final state locally instead of waiting for a notification
    requires_gateway = True
    # Actions run by purchase, in order
    purchase_steps: tuple[str, ...] = ("capture",)

    def __init__(self, client: AdyenClient):
        self.client = client

    def requires_manual_refund(self, payment: Payment) -> bool:
        return bool(payment.source and payment.source.requires_manual_refund)

    def local_outcome(self, action: str) -> PaymentEvent | None:
        """Event applied when ``action`` succeeds on a local method."""
        return None

    def _require_reference(self, payment: Payment, action: str) -> str:
        if not payment.response_code:
            raise GatewayError(f"Payment {payment.id} has no provider reference to {action}")
        return payment.response_code

    def authorize(self, payment: Payment) -> GatewayResponse:
        raise UnsupportedAction(self.method_type.value, "authorize")

    def after_authorize(self, payment: Payment) -> GatewayResponse | None:
        """Follow-up after a successful authorisation. Returns a failed lookup to log."""
        return None

    def capture(self, payment: Payment) -> GatewayResponse:
        return self.client.capture_payment(
            self._require_reference(payment, "capture"),
            payment.amount_cents,
            payment.currency,
            reference=payment.order.number,
        )

    def cancel(self, payment: Payment) -> GatewayResponse:
        return self.client.cancel_payment(
            self._require_reference(payment, "cancel"),
            reference=payment.order.number,
        )

    def credit(self, payment: Payment, amount_cents: int) -> GatewayResponse:
        return self.client.credit_payment(
            self._require_reference(payment, "credit"),
            amount_cents,
            payment.currency,
            reference=payment.order.number,
        )


class HostedPageStrategy(PaymentStrategy):
    method_type = PaymentMethodType.HOSTED_PAGE

    def authorize(self, payment: Payment) -> GatewayResponse:
        return GatewayResponse(
            success=True,
            message=HPP_AUTHORIZE_MESSAGE,
            psp_reference=payment.response_code,
        )


class ManualRefundOnlyStrategy(HostedPageStrategy):
    method_type = PaymentMethodType.MANUAL_REFUND_ONLY

    def requires_manual_refund(self, payment: Payment) -> bool:
        return True


class StoredCardStrategy(PaymentStrategy):
    method_type = PaymentMethodType.STORED_CARD
    purchase_steps = ("authorize", "capture")

    def authorize(self, payment: Payment) -> GatewayResponse:
        order = payment.order
        if not order.shopper_reference:
            raise GatewayError(f"Order {order.number} has no shopper reference for a stored card")
        return self.client.reauthorize_recurring_payment(
            reference=order.number,
            amount_cents=payment.amount_cents,
            currency=payment.currency,
            shopper_reference=order.shopper_reference,
            stored_card_reference=payment.source.stored_card_reference if payment.source else None,
        )

    def after_authorize(self, payment: Payment) -> GatewayResponse | None:
        """Copy the newest stored card detail onto the payment source."""
        response = self.client.list_stored_payment_methods(payment.order.shopper_reference)
        if not response.success:
            return response

        cards = stored_card_details(response)
        if not cards:
            return None

        newest = cards[-1]
        if payment.source is None:
            payment.source = PaymentSource(payment_method="scheme")
        source = payment.source
        source.stored_card_reference = newest.reference
        source.card_type = newest.variant
        source.last_digits = newest.last_digits
        source.expiry_month = newest.expiry_month
        source.expiry_year = newest.expiry_year
        source.holder_name = newest.holder_name

        logger.info(
            "Stored card profile refreshed",
            payment_id=payment.id,
            card_type=newest.variant,
            last_digits=newest.last_digits,
        )
        return None


class LocalStrategy(PaymentStrategy):
    """Payment methods settled outside the gateway."""

    method_type = PaymentMethodType.OTHER
    requires_gateway = False

    def local_outcome(self, action: str) -> PaymentEvent | None:
        return {"capture": PaymentEvent.COMPLETE, "cancel": PaymentEvent.VOID}.get(action)

    def requires_manual_refund(self, payment: Payment) -> bool:
        return False

    def authorize(self, payment: Payment) -> GatewayResponse:
        return GatewayResponse(success=True, message="authorized locally")

    def capture(self, payment: Payment) -> GatewayResponse:
        return GatewayResponse(success=True, message="captured locally")

    def cancel(self, payment: Payment) -> GatewayResponse:
        return GatewayResponse(success=True, message="voided locally")

    def credit(self, payment: Payment, amount_cents: int) -> GatewayResponse:
        raise UnsupportedAction(self.method_type.value, "credit")


def build_strategies(client: AdyenClient) -> dict[PaymentMethodType, PaymentStrategy]:
    """One strategy instance per payment method type."""
    return {
        strategy.method_type: strategy
        for strategy in (
            HostedPageStrategy(client),
            StoredCardStrategy(client),
            ManualRefundOnlyStrategy(client),
            LocalStrategy(client),
        )
    }
