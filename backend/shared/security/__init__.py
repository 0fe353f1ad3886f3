"""
Security module: notification authentication and redirect signatures.
"""

from shared.security.auth import (
    credentials_match,
    notification_authenticated,
    notification_basic_auth,
)
from shared.security.request_signing import MerchantSignature

__all__ = [
    "credentials_match",
    "notification_authenticated",
    "notification_basic_auth",
    "MerchantSignature",
]
