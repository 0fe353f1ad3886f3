"""
Payment state machine.

States only move forward:

    checkout -> pending -> processing -> completed | failed -> void

``pending`` and ``processing`` are interchangeable waiting states (pending
means the provider is waiting on the shopper). ``void`` is terminal.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from shared.config.constants import PaymentState
from .exceptions import InvalidTransition

if TYPE_CHECKING:
    from payments_api.models import Payment


class PaymentEvent(str, Enum):
    """Local state machine events."""

    START_PROCESSING = "start_processing"
    PEND = "pend"
    COMPLETE = "complete"
    FAIL = "fail"
    VOID = "void"


# event -> (allowed source states, target state)
TRANSITIONS: dict[PaymentEvent, tuple[frozenset[str], str]] = {
    PaymentEvent.START_PROCESSING: (
        frozenset({PaymentState.CHECKOUT, PaymentState.PENDING, PaymentState.PROCESSING}),
        PaymentState.PROCESSING,
    ),
    PaymentEvent.PEND: (
        frozenset({PaymentState.CHECKOUT, PaymentState.PENDING}),
        PaymentState.PENDING,
    ),
    PaymentEvent.COMPLETE: (
        frozenset({PaymentState.CHECKOUT, PaymentState.PENDING, PaymentState.PROCESSING}),
        PaymentState.COMPLETED,
    ),
    PaymentEvent.FAIL: (
        frozenset({PaymentState.CHECKOUT, PaymentState.PENDING, PaymentState.PROCESSING}),
        PaymentState.FAILED,
    ),
    # An uncaptured authorisation can be cancelled, so processing is allowed too
    PaymentEvent.VOID: (
        frozenset({
            PaymentState.PENDING,
            PaymentState.PROCESSING,
            PaymentState.COMPLETED,
            PaymentState.FAILED,
        }),
        PaymentState.VOID,
    ),
}

# Position along the forward-only order
STATE_RANK: dict[str, int] = {
    PaymentState.CHECKOUT: 0,
    PaymentState.PENDING: 1,
    PaymentState.PROCESSING: 1,
    PaymentState.COMPLETED: 2,
    PaymentState.FAILED: 2,
    PaymentState.VOID: 3,
}


def can_transition(state: str, event: PaymentEvent) -> bool:
    sources, _ = TRANSITIONS[event]
    return state in sources


def next_state(state: str, event: PaymentEvent, payment_id: int | None = None) -> str:
    """Target state for ``event`` from ``state``; raises InvalidTransition."""
    sources, target = TRANSITIONS[event]
    if state not in sources:
        raise InvalidTransition(payment_id, state, event.value)
    return target


def apply_event(payment: "Payment", event: PaymentEvent) -> str:
    """
    Move ``payment`` along ``event`` in memory. Returns the previous state.

    The caller owns the transaction.
    """
    previous = payment.state
    payment.state = next_state(previous, event, payment.id)
    return previous
