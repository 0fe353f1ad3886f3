"""
Centralized constants for the payments backend.
Avoids magic strings for payment states, event codes and ingress replies.

Usage:
    from shared.config.constants import PaymentState, EventCode

    if payment.state == PaymentState.PROCESSING:
        ...
"""

from enum import Enum
from typing import Final


# =============================================================================
# Payment and Order State
# =============================================================================


class PaymentState:
    """Payment state constants."""

    CHECKOUT: Final[str] = "checkout"
    PROCESSING: Final[str] = "processing"
    PENDING: Final[str] = "pending"
    COMPLETED: Final[str] = "completed"
    FAILED: Final[str] = "failed"
    VOID: Final[str] = "void"

    ALL: Final[list[str]] = [CHECKOUT, PROCESSING, PENDING, COMPLETED, FAILED, VOID]
    # States a new notification may still move forward
    OPEN: Final[list[str]] = [CHECKOUT, PENDING, PROCESSING]
    FINISHED: Final[list[str]] = [COMPLETED, FAILED, VOID]


class OrderState:
    """Order checkout state constants (owned by the storefront)."""

    CART: Final[str] = "cart"
    PAYMENT: Final[str] = "payment"
    COMPLETE: Final[str] = "complete"


class PaymentMethodType(str, Enum):
    """Closed set of payment method variants."""

    HOSTED_PAGE = "HOSTED_PAGE"
    STORED_CARD = "STORED_CARD"
    MANUAL_REFUND_ONLY = "MANUAL_REFUND_ONLY"
    OTHER = "OTHER"


class LogEntryKind:
    """What produced an audit log entry."""

    GATEWAY: Final[str] = "gateway"
    NOTIFICATION: Final[str] = "notification"
    MANUAL: Final[str] = "manual"


# =============================================================================
# Notifications
# =============================================================================


class EventCode(str, Enum):
    """Notification event codes this service acts on."""

    AUTHORISATION = "AUTHORISATION"
    CAPTURE = "CAPTURE"
    CAPTURE_FAILED = "CAPTURE_FAILED"
    CANCELLATION = "CANCELLATION"
    REFUND = "REFUND"
    CANCEL_OR_REFUND = "CANCEL_OR_REFUND"
    PENDING = "PENDING"

    @classmethod
    def parse(cls, value: str) -> "EventCode | None":
        """Return the matching member, or None for codes the service does not know."""
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class IngressReply:
    """Literal bodies the provider reads to decide whether to retry."""

    ACCEPTED: Final[str] = "[accepted]"
    REFUSED: Final[str] = "[refused]"


# =============================================================================
# Hosted Payment Page
# =============================================================================


class AuthResult:
    """authResult values returned on the shopper redirect."""

    AUTHORISED: Final[str] = "AUTHORISED"
    PENDING: Final[str] = "PENDING"
    REFUSED: Final[str] = "REFUSED"
    CANCELLED: Final[str] = "CANCELLED"
    ERROR: Final[str] = "ERROR"

    SUCCESSFUL: Final[frozenset[str]] = frozenset({AUTHORISED, PENDING})


MANUAL_REFUND_LOG_MESSAGE: Final[str] = (
    "This payment method does not support automated refunds. "
    "Please refund the shopper manually."
)

# Hosted page methods refunded by hand (matched by prefix, e.g. "ideal", "sofort")
MANUAL_REFUND_PAYMENT_METHODS: Final[tuple[str, ...]] = ("ideal", "sofort")


def requires_manual_refund(payment_method: str | None) -> bool:
    """True for hosted page methods that have no refund API."""
    return bool(payment_method) and payment_method.lower().startswith(MANUAL_REFUND_PAYMENT_METHODS)
