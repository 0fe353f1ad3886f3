"""HTTP routers."""

from payments_api.routers.checkout import router as checkout_router
from payments_api.routers.notifications import router as notifications_router
from payments_api.routers.payments import router as payments_router

__all__ = ["checkout_router", "notifications_router", "payments_router"]
