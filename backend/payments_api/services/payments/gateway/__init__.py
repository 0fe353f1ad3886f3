"""Adyen gateway client and response types."""

from .client import AdyenClient
from .responses import GatewayResponse, StoredCardDetail, stored_card_details

__all__ = [
    "AdyenClient",
    "GatewayResponse",
    "StoredCardDetail",
    "stored_card_details",
]
