"""
Payment Services - notification ingestion and payment state management.

Provides:
- Deduplicated notification storage and per-order mutual exclusion
- Notification application and synchronous gateway actions
- Hosted payment page redirect handling and the unapplied-notification sweeper
- Circuit breaker for gateway resilience
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitState,
    gateway_breaker,
    get_all_breaker_stats,
)
from .exceptions import (
    ConfigurationError,
    DuplicateNotification,
    GatewayError,
    InvalidSignature,
    InvalidTransition,
    LockFailed,
    OrderNotFound,
    PaymentNotFound,
    UnsupportedAction,
)
from .gateway import AdyenClient, GatewayResponse
from .ingestion import IngestOutcome, NotificationIngestionService
from .notification_processor import NotificationProcessor
from .notification_store import NotificationStore
from .order_mutex import DatabaseOrderMutex, OrderMutex, RedisOrderMutex, build_order_mutex
from .payment_actions import PaymentActions, run_locked_action
from .redirect import RedirectResult, RedirectReturnService
from .strategies import build_strategies
from .sweeper import SweepResult, start_notification_sweeper, sweep_unapplied_notifications

__all__ = [
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitState",
    "gateway_breaker",
    "get_all_breaker_stats",
    # Errors
    "ConfigurationError",
    "DuplicateNotification",
    "GatewayError",
    "InvalidSignature",
    "InvalidTransition",
    "LockFailed",
    "OrderNotFound",
    "PaymentNotFound",
    "UnsupportedAction",
    # Gateway
    "AdyenClient",
    "GatewayResponse",
    "build_strategies",
    # Notifications
    "IngestOutcome",
    "NotificationIngestionService",
    "NotificationProcessor",
    "NotificationStore",
    "SweepResult",
    "start_notification_sweeper",
    "sweep_unapplied_notifications",
    # Locking
    "OrderMutex",
    "DatabaseOrderMutex",
    "RedisOrderMutex",
    "build_order_mutex",
    # Payments
    "PaymentActions",
    "run_locked_action",
    "RedirectResult",
    "RedirectReturnService",
]
