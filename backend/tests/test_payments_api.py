"""
Tests for the payment action endpoints.
"""

from payments_api.services.payments.gateway import GatewayResponse
from shared.config.constants import MANUAL_REFUND_LOG_MESSAGE, PaymentMethodType, PaymentState


class TestGetPayment:
    """GET /api/payments/{id}."""

    def test_returns_payment_with_log(self, client, make_order, make_payment):
        payment = make_payment(make_order(), state=PaymentState.PROCESSING, response_code="790")
        client.post(f"/api/payments/{payment.id}/capture")

        response = client.get(f"/api/payments/{payment.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["order_number"] == "R100"
        assert data["method_type"] == "HOSTED_PAGE"
        assert data["state"] == "processing"
        assert len(data["log_entries"]) == 1
        assert data["log_entries"][0]["kind"] == "gateway"

    def test_unknown_payment(self, client):
        response = client.get("/api/payments/999")

        assert response.status_code == 404


class TestActions:
    """Action endpoints and their error mapping."""

    def test_capture(self, client, gateway, make_order, make_payment):
        payment = make_payment(make_order(), state=PaymentState.PROCESSING, response_code="790")

        response = client.post(f"/api/payments/{payment.id}/capture")

        assert response.status_code == 200
        data = response.json()
        assert data["action"] == "capture"
        assert data["state"] == "processing"
        assert data["message"] == "Request sent to gateway"
        gateway.capture_payment.assert_called_once()

    def test_invalid_transition_is_conflict(self, client, make_order, make_payment):
        payment = make_payment(make_order(), state=PaymentState.VOID, response_code="790")

        response = client.post(f"/api/payments/{payment.id}/capture")

        assert response.status_code == 409
        assert "void" in response.json()["detail"]

    def test_gateway_failure_is_bad_gateway(self, client, gateway, make_order, make_payment):
        payment = make_payment(make_order(), state=PaymentState.PROCESSING, response_code="790")
        gateway.capture_payment.return_value = GatewayResponse(
            success=False, message="API request error: timed out"
        )

        response = client.post(f"/api/payments/{payment.id}/capture")

        assert response.status_code == 502
        assert "API request error: timed out" in response.json()["detail"]

    def test_locked_order_is_busy(self, client, order_mutex, make_order, make_payment):
        payment = make_payment(make_order(), state=PaymentState.PROCESSING, response_code="790")

        with order_mutex.hold("R100"):
            response = client.post(f"/api/payments/{payment.id}/capture")

        assert response.status_code == 503
        assert "Retry-After" in response.headers

    def test_unknown_payment_action(self, client):
        response = client.post("/api/payments/999/capture")

        assert response.status_code == 404

    def test_manual_refund(self, client, gateway, make_order, make_payment):
        payment = make_payment(
            make_order(),
            state=PaymentState.COMPLETED,
            method_type=PaymentMethodType.MANUAL_REFUND_ONLY,
            response_code="790",
        )

        response = client.post(f"/api/payments/{payment.id}/cancel")

        assert response.status_code == 200
        assert response.json()["message"] == MANUAL_REFUND_LOG_MESSAGE
        gateway.cancel_payment.assert_not_called()

    def test_credit(self, client, gateway, make_order, make_payment):
        payment = make_payment(make_order(), state=PaymentState.COMPLETED, response_code="790")

        response = client.post(f"/api/payments/{payment.id}/credit", json={"amount_cents": 500})

        assert response.status_code == 200
        gateway.credit_payment.assert_called_once_with("790", 500, "EUR", reference="R100")

    def test_credit_requires_positive_amount(self, client, make_order, make_payment):
        payment = make_payment(make_order(), state=PaymentState.COMPLETED, response_code="790")

        response = client.post(f"/api/payments/{payment.id}/credit", json={"amount_cents": 0})

        assert response.status_code == 422

    def test_unsupported_action_is_bad_request(self, client, make_order, make_payment):
        payment = make_payment(
            make_order(), state=PaymentState.COMPLETED, method_type=PaymentMethodType.OTHER
        )

        response = client.post(f"/api/payments/{payment.id}/credit", json={"amount_cents": 100})

        assert response.status_code == 400

    def test_purchase_with_redirect(self, client, gateway, make_order, make_payment, stored_card_source):
        gateway.reauthorize_recurring_payment.return_value = GatewayResponse(
            success=False,
            message="RedirectShopper",
            result_code="RedirectShopper",
            md="md-value",
            pa_request="pa-request-value",
            issuer_url="https://issuer.example.com/3ds",
        )
        payment = make_payment(
            make_order(shopper_reference="shopper-1"),
            method_type=PaymentMethodType.STORED_CARD,
            source=stored_card_source,
        )

        response = client.post(f"/api/payments/{payment.id}/purchase")

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "checkout"
        assert data["redirect_url"] == "https://issuer.example.com/3ds"
