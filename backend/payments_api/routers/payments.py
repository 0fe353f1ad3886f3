"""
Synchronous payment actions for back-office and checkout callers.

Each action runs under the order mutex; the gateway call happens while the
lock is held.
"""

from collections.abc import Generator
from contextlib import contextmanager

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.config.constants import MANUAL_REFUND_LOG_MESSAGE
from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.utils.exceptions import (
    ExternalServiceError,
    InvalidTransitionError,
    PaymentNotFoundError,
    ResourceBusyError,
    ValidationError,
)
from shared.utils.schemas import (
    CreditRequest,
    LogEntryOutput,
    PaymentActionResponse,
    PaymentDetailOutput,
    PaymentOutput,
)
from payments_api.core.dependencies import get_gateway, get_order_mutex
from payments_api.services.payments.exceptions import (
    GatewayError,
    InvalidTransition,
    LockFailed,
    PaymentNotFound,
    UnsupportedAction,
)
from payments_api.services.payments.gateway import AdyenClient, GatewayResponse
from payments_api.services.payments.order_mutex import OrderMutex
from payments_api.services.payments.payment_actions import (
    PaymentActions,
    load_payment,
    run_locked_action,
)


router = APIRouter(prefix="/api/payments", tags=["payments"])


@contextmanager
def translate_payment_errors(payment_id: int, action: str) -> Generator[None, None, None]:
    """Map domain errors to HTTP errors."""
    try:
        yield
    except PaymentNotFound:
        raise PaymentNotFoundError(payment_id)
    except LockFailed as e:
        raise ResourceBusyError(
            f"Order {e.order_key}",
            retry_after=max(1, int(settings.order_mutex_timeout_seconds)),
            payment_id=payment_id,
        )
    except InvalidTransition as e:
        raise InvalidTransitionError("payment", e.from_state, action, payment_id=payment_id)
    except GatewayError as e:
        raise ExternalServiceError("Adyen", message=e.message, payment_id=payment_id, action=action)
    except UnsupportedAction as e:
        raise ValidationError(str(e), payment_id=payment_id)


def _action_response(
    payment_id: int,
    action: str,
    state: str,
    response: GatewayResponse | None,
) -> PaymentActionResponse:
    if response is None:
        return PaymentActionResponse(
            payment_id=payment_id, action=action, state=state, message=MANUAL_REFUND_LOG_MESSAGE
        )
    if response.redirect:
        return PaymentActionResponse(
            payment_id=payment_id,
            action=action,
            state=state,
            message="3-D Secure authentication required",
            redirect_url=response.issuer_url,
        )
    return PaymentActionResponse(
        payment_id=payment_id, action=action, state=state, message="Request sent to gateway"
    )


def _run_action(
    db: Session,
    mutex: OrderMutex,
    gateway: AdyenClient,
    payment_id: int,
    action: str,
    amount_cents: int | None = None,
) -> PaymentActionResponse:
    with translate_payment_errors(payment_id, action):
        payment, response = run_locked_action(
            db,
            mutex,
            PaymentActions(db, gateway),
            payment_id,
            action,
            amount_cents=amount_cents,
        )
    return _action_response(payment.id, action, payment.state, response)


# =============================================================================
# Read
# =============================================================================


@router.get("/{payment_id}", response_model=PaymentDetailOutput)
def get_payment(payment_id: int, db: Session = Depends(get_db)) -> PaymentDetailOutput:
    """Payment state and its log entries, oldest first."""
    with translate_payment_errors(payment_id, "read"):
        payment = load_payment(db, payment_id)

    return PaymentDetailOutput(
        **PaymentOutput.model_validate(payment).model_dump(),
        order_number=payment.order.number,
        log_entries=[LogEntryOutput.model_validate(entry) for entry in payment.log_entries],
    )


# =============================================================================
# Actions
# =============================================================================


@router.post("/{payment_id}/authorize", response_model=PaymentActionResponse)
def authorize_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    mutex: OrderMutex = Depends(get_order_mutex),
    gateway: AdyenClient = Depends(get_gateway),
) -> PaymentActionResponse:
    return _run_action(db, mutex, gateway, payment_id, "authorize")


@router.post("/{payment_id}/capture", response_model=PaymentActionResponse)
def capture_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    mutex: OrderMutex = Depends(get_order_mutex),
    gateway: AdyenClient = Depends(get_gateway),
) -> PaymentActionResponse:
    return _run_action(db, mutex, gateway, payment_id, "capture")


@router.post("/{payment_id}/cancel", response_model=PaymentActionResponse)
def cancel_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    mutex: OrderMutex = Depends(get_order_mutex),
    gateway: AdyenClient = Depends(get_gateway),
) -> PaymentActionResponse:
    """Cancel an authorisation or refund a capture in full."""
    return _run_action(db, mutex, gateway, payment_id, "cancel")


@router.post("/{payment_id}/purchase", response_model=PaymentActionResponse)
def purchase_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    mutex: OrderMutex = Depends(get_order_mutex),
    gateway: AdyenClient = Depends(get_gateway),
) -> PaymentActionResponse:
    """Authorise if the payment method needs it, then capture."""
    return _run_action(db, mutex, gateway, payment_id, "purchase")


@router.post("/{payment_id}/credit", response_model=PaymentActionResponse)
def credit_payment(
    payment_id: int,
    body: CreditRequest,
    db: Session = Depends(get_db),
    mutex: OrderMutex = Depends(get_order_mutex),
    gateway: AdyenClient = Depends(get_gateway),
) -> PaymentActionResponse:
    """Refund part or all of a captured payment."""
    return _run_action(db, mutex, gateway, payment_id, "credit", amount_cents=body.amount_cents)
