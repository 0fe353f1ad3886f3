"""
Tests for applying notifications to payments.
"""

from payments_api.models import LogEntry
from payments_api.services.payments.notification_processor import NotificationProcessor
from shared.config.constants import LogEntryKind, PaymentState


def _entries(db_session, notification):
    return db_session.query(LogEntry).filter(LogEntry.notification_id == notification.id).all()


class TestResolution:
    """Which payment a notification refers to."""

    def test_original_reference_wins(self, db_session, make_order, make_payment, stored_notification):
        order = make_order()
        first = make_payment(order, state=PaymentState.PROCESSING, response_code="790")
        make_payment(order, state=PaymentState.PROCESSING, response_code="991")
        notification = stored_notification(
            pspReference="991", originalReference="790", eventCode="CAPTURE"
        )

        assert NotificationProcessor(db_session).resolve_payment(notification).id == first.id

    def test_psp_reference_when_no_original(self, db_session, make_order, make_payment, stored_notification):
        order = make_order()
        payment = make_payment(order, state=PaymentState.PROCESSING, response_code="790")
        make_payment(order)
        notification = stored_notification(pspReference="790")

        assert NotificationProcessor(db_session).resolve_payment(notification).id == payment.id

    def test_falls_back_to_open_payment_of_order(
        self, db_session, make_order, make_payment, stored_notification
    ):
        order = make_order()
        make_payment(order, state=PaymentState.FAILED)
        open_payment = make_payment(order)
        notification = stored_notification(pspReference="new-ref")

        assert NotificationProcessor(db_session).resolve_payment(notification).id == open_payment.id

    def test_payment_with_other_reference_is_not_a_fallback(
        self, db_session, make_order, make_payment, stored_notification
    ):
        order = make_order()
        make_payment(order, state=PaymentState.PROCESSING, response_code="other")
        notification = stored_notification(pspReference="new-ref")

        assert NotificationProcessor(db_session).resolve_payment(notification) is None


    def test_references_do_not_cross_orders(
        self, db_session, make_order, make_payment, stored_notification
    ):
        payment = make_payment(make_order(), state=PaymentState.PROCESSING, response_code="790")
        make_order(number="R200")
        notification = stored_notification(
            pspReference="8830", originalReference="790", eventCode="CAPTURE", merchantReference="R200"
        )

        entry = NotificationProcessor(db_session).process(notification)

        db_session.refresh(payment)
        assert payment.state == PaymentState.PROCESSING
        assert entry.payment_id is None


class TestAuthorisationThenCapture:
    """The normal hosted page flow: authorise, then capture."""

    def test_authorisation_sets_reference_and_processing(
        self, db_session, make_order, make_payment, stored_notification
    ):
        payment = make_payment(make_order())
        notification = stored_notification(pspReference="790")

        entry = NotificationProcessor(db_session).process(notification)

        db_session.refresh(payment)
        assert payment.response_code == "790"
        assert payment.state == PaymentState.PROCESSING
        assert entry.kind == LogEntryKind.NOTIFICATION
        assert entry.success is True
        assert entry.payment_id == payment.id
        assert len(_entries(db_session, notification)) == 1

    def test_authorisation_for_processing_payment(
        self, db_session, make_order, make_payment, stored_notification
    ):
        """A payment already processing gets its reference and stays processing."""
        payment = make_payment(make_order(number="R100"), state=PaymentState.PROCESSING)

        NotificationProcessor(db_session).process(
            stored_notification(pspReference="790", merchantReference="R100")
        )

        db_session.refresh(payment)
        assert payment.response_code == "790"
        assert payment.state == PaymentState.PROCESSING

    def test_capture_completes(self, db_session, make_order, make_payment, stored_notification):
        payment = make_payment(make_order())
        processor = NotificationProcessor(db_session)
        processor.process(stored_notification(pspReference="790"))

        processor.process(stored_notification(
            pspReference="8815", originalReference="790", eventCode="CAPTURE"
        ))

        db_session.refresh(payment)
        assert payment.state == PaymentState.COMPLETED
        assert len(payment.log_entries) == 2

    def test_authorisation_keeps_existing_reference(
        self, db_session, make_order, make_payment, stored_notification
    ):
        payment = make_payment(make_order(), state=PaymentState.PROCESSING, response_code="790")

        NotificationProcessor(db_session).process(stored_notification(pspReference="790"))

        db_session.refresh(payment)
        assert payment.response_code == "790"
        assert payment.state == PaymentState.PROCESSING


class TestFailures:
    """Unsuccessful events fail the payment with the provider's reason."""

    def test_refused_authorisation(self, db_session, make_order, make_payment, stored_notification):
        payment = make_payment(make_order())
        notification = stored_notification(success="false", reason="Refused")

        entry = NotificationProcessor(db_session).process(notification)

        db_session.refresh(payment)
        assert payment.state == PaymentState.FAILED
        assert payment.failure_reason == "Refused"
        assert entry.success is False

    def test_reason_from_additional_data(self, db_session, make_order, make_payment, stored_notification):
        payment = make_payment(make_order())
        notification = stored_notification(
            success="false", reason="", **{"additionalData.refusalReasonRaw": "05 : Do not honor"}
        )

        NotificationProcessor(db_session).process(notification)

        db_session.refresh(payment)
        assert payment.failure_reason == "05 : Do not honor"

    def test_capture_failed(self, db_session, make_order, make_payment, stored_notification):
        payment = make_payment(make_order(), state=PaymentState.PROCESSING, response_code="790")

        NotificationProcessor(db_session).process(stored_notification(
            pspReference="8815", originalReference="790", eventCode="CAPTURE_FAILED",
            reason="Insufficient funds",
        ))

        db_session.refresh(payment)
        assert payment.state == PaymentState.FAILED
        assert payment.failure_reason == "Insufficient funds"


class TestCredits:
    """Cancellations and refunds void the payment and accumulate credit."""

    def test_refund_voids_and_credits(self, db_session, make_order, make_payment, stored_notification):
        payment = make_payment(make_order(), state=PaymentState.COMPLETED, response_code="790")

        NotificationProcessor(db_session).process(stored_notification(
            pspReference="r1", originalReference="790", eventCode="REFUND", value="500"
        ))

        db_session.refresh(payment)
        assert payment.state == PaymentState.VOID
        assert payment.credited_cents == 500

    def test_second_partial_refund_adds_credit(
        self, db_session, make_order, make_payment, stored_notification
    ):
        payment = make_payment(make_order(), state=PaymentState.COMPLETED, response_code="790")
        processor = NotificationProcessor(db_session)

        processor.process(stored_notification(
            pspReference="r1", originalReference="790", eventCode="REFUND", value="500"
        ))
        second = processor.process(stored_notification(
            pspReference="r2", originalReference="790", eventCode="REFUND", value="300"
        ))

        db_session.refresh(payment)
        assert payment.state == PaymentState.VOID
        assert payment.credited_cents == 800
        assert "anomaly" not in second.details

    def test_cancellation_of_authorisation(self, db_session, make_order, make_payment, stored_notification):
        payment = make_payment(make_order(), state=PaymentState.PROCESSING, response_code="790")

        NotificationProcessor(db_session).process(stored_notification(
            pspReference="c1", originalReference="790", eventCode="CANCELLATION", value="2000"
        ))

        db_session.refresh(payment)
        assert payment.state == PaymentState.VOID
        assert payment.credited_cents == 2000


class TestAnomalies:
    """Events that cannot be applied are still recorded exactly once."""

    def test_unknown_event_logged_without_change(
        self, db_session, make_order, make_payment, stored_notification
    ):
        payment = make_payment(make_order(), state=PaymentState.PROCESSING, response_code="790")
        notification = stored_notification(eventCode="REPORT_AVAILABLE")

        entry = NotificationProcessor(db_session).process(notification)

        db_session.refresh(payment)
        assert payment.state == PaymentState.PROCESSING
        assert "REPORT_AVAILABLE" in entry.message

    def test_unknown_failed_event_leaves_state(
        self, db_session, make_order, make_payment, stored_notification
    ):
        payment = make_payment(make_order(), state=PaymentState.PROCESSING, response_code="790")
        notification = stored_notification(eventCode="REPORT_AVAILABLE", success="false")

        entry = NotificationProcessor(db_session).process(notification)

        db_session.refresh(payment)
        assert payment.state == PaymentState.PROCESSING
        assert payment.failure_reason is None
        assert "REPORT_AVAILABLE" in entry.message

    def test_failed_refund_on_completed_payment_keeps_reason(
        self, db_session, make_order, make_payment, stored_notification
    ):
        payment = make_payment(make_order(), state=PaymentState.COMPLETED, response_code="790")
        notification = stored_notification(
            pspReference="8816",
            originalReference="790",
            eventCode="REFUND",
            success="false",
            reason="Insufficient balance on payment",
        )

        entry = NotificationProcessor(db_session).process(notification)

        db_session.refresh(payment)
        assert payment.state == PaymentState.COMPLETED
        assert entry.details["anomaly"] is True
        assert entry.details["reason"] == "Insufficient balance on payment"

    def test_invalid_transition_is_recorded_as_anomaly(
        self, db_session, make_order, make_payment, stored_notification
    ):
        payment = make_payment(make_order(), state=PaymentState.COMPLETED, response_code="790")
        notification = stored_notification(
            pspReference="8815", originalReference="790", eventCode="CAPTURE_FAILED"
        )

        entry = NotificationProcessor(db_session).process(notification)

        db_session.refresh(payment)
        assert payment.state == PaymentState.COMPLETED
        assert entry.details["anomaly"] is True
        assert len(_entries(db_session, notification)) == 1

    def test_unmatched_notification_is_applied_without_payment(self, db_session, stored_notification):
        notification = stored_notification(merchantReference="R404")

        entry = NotificationProcessor(db_session).process(notification)

        assert entry.payment_id is None
        assert len(_entries(db_session, notification)) == 1

    def test_second_application_returns_none(
        self, db_session, make_order, make_payment, stored_notification
    ):
        payment = make_payment(make_order())
        notification = stored_notification()
        processor = NotificationProcessor(db_session)
        processor.process(notification)

        assert processor.process(notification) is None
        assert len(_entries(db_session, notification)) == 1
        db_session.refresh(payment)
        assert payment.state == PaymentState.PROCESSING

    def test_pending_moves_checkout_to_pending(
        self, db_session, make_order, make_payment, stored_notification
    ):
        payment = make_payment(make_order())

        NotificationProcessor(db_session).process(stored_notification(eventCode="PENDING"))

        db_session.refresh(payment)
        assert payment.state == PaymentState.PENDING
