"""
Hosted payment page return.
"""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.security.request_signing import MerchantSignature
from shared.utils.exceptions import ForbiddenError, NotFoundError, ResourceBusyError
from payments_api.core.dependencies import get_gateway, get_merchant_signature, get_order_mutex
from payments_api.services.payments.exceptions import InvalidSignature, LockFailed, OrderNotFound
from payments_api.services.payments.gateway import AdyenClient
from payments_api.services.payments.order_mutex import OrderMutex
from payments_api.services.payments.payment_actions import PaymentActions
from payments_api.services.payments.redirect import RedirectReturnService


router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.get("/payment/adyen")
def adyen_redirect_return(
    request: Request,
    db: Session = Depends(get_db),
    mutex: OrderMutex = Depends(get_order_mutex),
    gateway: AdyenClient = Depends(get_gateway),
    signature: MerchantSignature = Depends(get_merchant_signature),
) -> RedirectResponse:
    """
    The shopper's browser lands here after the hosted payment page.

    Sends the shopper on to the storefront's confirmation page, or back to
    the payment step when the payment was refused.
    """
    service = RedirectReturnService(
        db,
        mutex,
        PaymentActions(db, gateway),
        signature,
        settings.base_url,
    )
    try:
        result = service.complete(dict(request.query_params))
    except InvalidSignature:
        raise ForbiddenError("Invalid redirect signature")
    except OrderNotFound as e:
        raise NotFoundError("Order", e.number)
    except LockFailed as e:
        raise ResourceBusyError(f"Order {e.order_key}")

    return RedirectResponse(result.redirect_url, status_code=status.HTTP_302_FOUND)
