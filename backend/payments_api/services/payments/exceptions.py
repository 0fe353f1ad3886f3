"""
Domain exceptions raised by the payment services.

These are plain exceptions; routers translate them into HTTP responses
(see shared.utils.exceptions) or into ingress replies at the boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from payments_api.models import Notification
    from .gateway import GatewayResponse


class PaymentServiceError(Exception):
    """Base class for payment service errors."""


class DuplicateNotification(PaymentServiceError):
    """The exact event was already stored. Carries the stored record."""

    def __init__(self, existing: "Notification"):
        self.existing = existing
        super().__init__(
            f"Notification {existing.psp_reference}/{existing.event_code}"
            f"/{existing.success} already stored"
        )


class LockFailed(PaymentServiceError):
    """The order mutex could not be acquired within the timeout."""

    def __init__(self, order_key: str, timeout: float):
        self.order_key = order_key
        self.timeout = timeout
        super().__init__(f"Could not lock order {order_key} within {timeout:.2f}s")


class InvalidTransition(PaymentServiceError):
    """The payment's current state does not allow the requested event."""

    def __init__(self, payment_id: int | None, from_state: str, event: str):
        self.payment_id = payment_id
        self.from_state = from_state
        self.event = event
        super().__init__(f"Payment {payment_id} cannot '{event}' from state '{from_state}'")


class GatewayError(PaymentServiceError):
    """A gateway call failed, locally or as a business refusal."""

    def __init__(self, message: str, response: "GatewayResponse | None" = None):
        self.message = message
        self.response = response
        super().__init__(message)


class ConfigurationError(PaymentServiceError):
    """Missing or invalid configuration. Fatal at startup."""


class PaymentNotFound(PaymentServiceError):
    """No payment with the given id."""

    def __init__(self, payment_id: int):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} not found")


class UnsupportedAction(PaymentServiceError):
    """The payment method has no implementation of the action."""

    def __init__(self, method: str, action: str):
        self.method = method
        self.action = action
        super().__init__(f"Payment method {method} does not support '{action}'")


class InvalidSignature(PaymentServiceError):
    """Redirect parameters do not carry a valid merchant signature."""


class OrderNotFound(PaymentServiceError):
    """No order with the given number."""

    def __init__(self, number: str):
        self.number = number
        super().__init__(f"Order {number} not found")
