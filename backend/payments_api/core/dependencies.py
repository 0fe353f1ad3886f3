"""
Process-wide collaborators exposed as FastAPI dependencies.

Tests replace them through ``app.dependency_overrides``.
"""

from functools import lru_cache

from shared.config.settings import settings
from shared.security.request_signing import MerchantSignature
from payments_api.services.payments.gateway import AdyenClient
from payments_api.services.payments.order_mutex import OrderMutex, build_order_mutex


@lru_cache
def get_order_mutex() -> OrderMutex:
    """The configured order mutex backend."""
    return build_order_mutex(settings)


@lru_cache
def get_gateway() -> AdyenClient:
    """Shared gateway client; httpx keeps its connection pool across requests."""
    return AdyenClient(settings.adyen_config())


def get_merchant_signature() -> MerchantSignature:
    return MerchantSignature(settings.adyen_shared_secret)
