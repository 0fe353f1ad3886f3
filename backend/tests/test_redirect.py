"""
Tests for the shopper's return from the hosted payment page.
"""

import pytest

from payments_api.models import Payment
from payments_api.services.payments.exceptions import InvalidSignature, OrderNotFound
from payments_api.services.payments.payment_actions import PaymentActions
from payments_api.services.payments.redirect import RedirectReturnService
from shared.config.constants import OrderState, PaymentMethodType, PaymentState


STOREFRONT = "https://shop.example.com"


@pytest.fixture
def redirect_service(db_session, order_mutex, gateway, signer):
    return RedirectReturnService(
        db_session, order_mutex, PaymentActions(db_session, gateway), signer, STOREFRONT
    )


class TestRedirectReturnService:
    """Finalizing checkout from signed redirect parameters."""

    def test_authorised_moves_payment_to_processing(
        self, db_session, redirect_service, redirect_params, make_order, make_payment
    ):
        order = make_order()
        payment = make_payment(order)

        result = redirect_service.complete(redirect_params())

        assert result.successful is True
        assert result.payment_id == payment.id
        assert result.redirect_url == f"{STOREFRONT}/checkout/complete?order=R100"
        db_session.refresh(payment)
        db_session.refresh(order)
        assert payment.state == PaymentState.PROCESSING
        assert payment.response_code == "790"
        assert order.state == OrderState.COMPLETE

    def test_tampered_parameters_rejected(self, redirect_service, redirect_params, make_order):
        make_order()
        params = redirect_params()
        params["authResult"] = "PENDING"

        with pytest.raises(InvalidSignature):
            redirect_service.complete(params)

    def test_unknown_order(self, db_session, redirect_service, redirect_params):
        with pytest.raises(OrderNotFound):
            redirect_service.complete(redirect_params(merchantReference="R404"))

    def test_refused_fails_open_payment(
        self, db_session, redirect_service, redirect_params, make_order, make_payment
    ):
        order = make_order()
        payment = make_payment(order)

        result = redirect_service.complete(redirect_params(authResult="REFUSED", pspReference=""))

        assert result.successful is False
        assert result.redirect_url == f"{STOREFRONT}/checkout/payment?order=R100&payment_error=REFUSED"
        db_session.refresh(payment)
        db_session.refresh(order)
        assert payment.state == PaymentState.FAILED
        assert order.state == OrderState.PAYMENT

    def test_creates_payment_when_none_is_open(
        self, db_session, redirect_service, redirect_params, make_order
    ):
        order = make_order()

        result = redirect_service.complete(redirect_params())

        payment = db_session.get(Payment, result.payment_id)
        assert payment.order_id == order.id
        assert payment.method_type == PaymentMethodType.HOSTED_PAGE
        assert payment.state == PaymentState.PROCESSING
        assert payment.source.payment_method == "visa"

    def test_bank_transfer_is_manual_refund_only(
        self, db_session, redirect_service, redirect_params, make_order
    ):
        make_order()

        result = redirect_service.complete(redirect_params(paymentMethod="ideal"))

        payment = db_session.get(Payment, result.payment_id)
        assert payment.method_type == PaymentMethodType.MANUAL_REFUND_ONLY
        assert payment.source.requires_manual_refund is True

    def test_reference_from_earlier_notification(
        self, db_session, redirect_service, redirect_params, make_order, make_payment, stored_notification
    ):
        payment = make_payment(make_order())
        stored_notification(pspReference="790")

        redirect_service.complete(redirect_params(authResult="PENDING", pspReference=""))

        db_session.refresh(payment)
        assert payment.response_code == "790"
        assert payment.state == PaymentState.PROCESSING

    def test_notification_first_then_redirect(
        self, db_session, redirect_service, redirect_params, make_order, make_payment
    ):
        """The payment the notification already authorised is reused, not duplicated."""
        order = make_order()
        make_payment(order, state=PaymentState.PROCESSING, response_code="790")

        redirect_service.complete(redirect_params())

        assert db_session.query(Payment).filter(Payment.order_id == order.id).count() == 1


class TestRedirectEndpoint:
    """GET /checkout/payment/adyen."""

    def test_authorised_redirects_to_confirmation(
        self, client, db_session, redirect_params, make_order, make_payment
    ):
        make_payment(make_order())

        response = client.get(
            "/checkout/payment/adyen", params=redirect_params(), follow_redirects=False
        )

        assert response.status_code == 302
        assert response.headers["location"].endswith("/checkout/complete?order=R100")

    def test_refused_redirects_to_payment_step(self, client, redirect_params, make_order, make_payment):
        make_payment(make_order())

        response = client.get(
            "/checkout/payment/adyen",
            params=redirect_params(authResult="CANCELLED", pspReference=""),
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert "payment_error=CANCELLED" in response.headers["location"]

    def test_bad_signature_forbidden(self, client, redirect_params, make_order):
        make_order()
        params = redirect_params()
        params["merchantSig"] = "AAAA"

        response = client.get("/checkout/payment/adyen", params=params, follow_redirects=False)

        assert response.status_code == 403

    def test_unknown_order_not_found(self, client, redirect_params):
        response = client.get(
            "/checkout/payment/adyen",
            params=redirect_params(merchantReference="R404"),
            follow_redirects=False,
        )

        assert response.status_code == 404
