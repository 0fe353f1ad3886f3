"""
Payment state machine tests.

Property-based tests with Hypothesis for the forward-only invariant.
"""

from types import SimpleNamespace

import pytest
from hypothesis import given, settings, strategies as st

from payments_api.services.payments.exceptions import InvalidTransition
from payments_api.services.payments.state_machine import (
    STATE_RANK,
    TRANSITIONS,
    PaymentEvent,
    apply_event,
    can_transition,
    next_state,
)
from shared.config.constants import PaymentState


class TestTransitions:
    """Explicit transition table."""

    @pytest.mark.parametrize(
        "state,event,expected",
        [
            (PaymentState.CHECKOUT, PaymentEvent.START_PROCESSING, PaymentState.PROCESSING),
            (PaymentState.PENDING, PaymentEvent.START_PROCESSING, PaymentState.PROCESSING),
            (PaymentState.PROCESSING, PaymentEvent.START_PROCESSING, PaymentState.PROCESSING),
            (PaymentState.CHECKOUT, PaymentEvent.PEND, PaymentState.PENDING),
            (PaymentState.PROCESSING, PaymentEvent.COMPLETE, PaymentState.COMPLETED),
            (PaymentState.PENDING, PaymentEvent.FAIL, PaymentState.FAILED),
            (PaymentState.COMPLETED, PaymentEvent.VOID, PaymentState.VOID),
            (PaymentState.FAILED, PaymentEvent.VOID, PaymentState.VOID),
            (PaymentState.PROCESSING, PaymentEvent.VOID, PaymentState.VOID),
        ],
    )
    def test_allowed(self, state, event, expected):
        assert next_state(state, event) == expected

    @pytest.mark.parametrize(
        "state,event",
        [
            (PaymentState.COMPLETED, PaymentEvent.START_PROCESSING),
            (PaymentState.COMPLETED, PaymentEvent.FAIL),
            (PaymentState.FAILED, PaymentEvent.COMPLETE),
            (PaymentState.PROCESSING, PaymentEvent.PEND),
            (PaymentState.CHECKOUT, PaymentEvent.VOID),
            (PaymentState.VOID, PaymentEvent.VOID),
        ],
    )
    def test_rejected(self, state, event):
        with pytest.raises(InvalidTransition) as exc:
            next_state(state, event, payment_id=7)

        assert exc.value.from_state == state
        assert exc.value.payment_id == 7

    def test_apply_event_returns_previous_state(self):
        payment = SimpleNamespace(id=1, state=PaymentState.PROCESSING)

        previous = apply_event(payment, PaymentEvent.COMPLETE)

        assert previous == PaymentState.PROCESSING
        assert payment.state == PaymentState.COMPLETED

    def test_rejected_event_leaves_payment_untouched(self):
        payment = SimpleNamespace(id=1, state=PaymentState.COMPLETED)

        with pytest.raises(InvalidTransition):
            apply_event(payment, PaymentEvent.FAIL)

        assert payment.state == PaymentState.COMPLETED


class TestStateMachineProperties:
    """Properties over arbitrary event sequences."""

    @given(
        start=st.sampled_from(PaymentState.ALL),
        events=st.lists(st.sampled_from(list(PaymentEvent)), max_size=12),
    )
    @settings(max_examples=200)
    def test_rank_never_decreases(self, start, events):
        """Property: any accepted sequence of events only moves forward."""
        state = start
        for event in events:
            if not can_transition(state, event):
                continue
            target = next_state(state, event)
            assert STATE_RANK[target] >= STATE_RANK[state]
            state = target

    @given(event=st.sampled_from(list(PaymentEvent)))
    def test_void_is_terminal(self, event):
        assert not can_transition(PaymentState.VOID, event)

    @given(
        state=st.sampled_from(PaymentState.ALL),
        event=st.sampled_from(list(PaymentEvent)),
    )
    def test_can_transition_agrees_with_next_state(self, state, event):
        if can_transition(state, event):
            assert next_state(state, event) == TRANSITIONS[event][1]
        else:
            with pytest.raises(InvalidTransition):
                next_state(state, event)
