"""
Configuration module: Settings, logging, constants.
"""

from shared.config.settings import settings, get_settings, AdyenConfig, DATABASE_URL
from shared.config.logging import get_logger, setup_logging
from shared.config.constants import (
    PaymentState,
    OrderState,
    PaymentMethodType,
    EventCode,
    IngressReply,
)

__all__ = [
    # settings
    "settings",
    "get_settings",
    "AdyenConfig",
    "DATABASE_URL",
    # logging
    "get_logger",
    "setup_logging",
    # constants
    "PaymentState",
    "OrderState",
    "PaymentMethodType",
    "EventCode",
    "IngressReply",
]
