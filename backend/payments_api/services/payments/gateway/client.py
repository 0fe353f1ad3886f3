"""
Adyen API client.

Wraps the Payment and Recurring JSON endpoints with httpx. Every call goes
through the gateway circuit breaker and returns a GatewayResponse; transport
failures become unsuccessful responses instead of exceptions, so the caller
can always write a log entry.

Usage:
    client = AdyenClient(settings.adyen_config())
    response = client.capture_payment("7914483013255061", 2000, "EUR", reference="R100")
"""

from __future__ import annotations

from typing import Any

import httpx

from shared.config.logging import gateway_logger as logger, mask_reference
from shared.config.settings import AdyenConfig
from ..circuit_breaker import CircuitBreaker, CircuitBreakerError, gateway_breaker
from .responses import (
    CANCEL_RECEIVED,
    CAPTURE_RECEIVED,
    REFUND_RECEIVED,
    GatewayResponse,
    authorisation_response,
    error_response,
    listing_response,
    modification_response,
)

PAYMENT_API_VERSION = "v68"
RECURRING_API_VERSION = "v68"


class AdyenClient:
    """Blocking gateway client; one instance is shared by all workers."""

    def __init__(
        self,
        config: AdyenConfig,
        breaker: CircuitBreaker = gateway_breaker,
        transport: httpx.BaseTransport | None = None,
    ):
        self.config = config
        self.breaker = breaker
        self._http = httpx.Client(
            base_url=config.api_base_url.rstrip("/") + "/",
            auth=(config.api_username, config.api_password),
            timeout=config.request_timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    # =========================================================================
    # Transport
    # =========================================================================

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """
        POST ``payload`` and return the decoded body.

        Server errors and transport failures count against the breaker;
        4xx bodies are business failures and are returned for parsing.
        """
        with self.breaker.call():
            response = self._http.post(path, json=payload)
            if response.status_code >= 500:
                response.raise_for_status()

        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}

        if response.is_error:
            logger.warning(
                "Gateway rejected request",
                path=path,
                status_code=response.status_code,
                error_code=body.get("errorCode"),
            )
        return body

    def _call(self, path: str, payload: dict[str, Any], build) -> GatewayResponse:
        try:
            params = self._post(path, payload)
        except (httpx.HTTPError, CircuitBreakerError) as e:
            logger.error("Gateway request failed", path=path, error=str(e))
            return error_response(e)

        response = build(params)
        logger.info(
            "Gateway response",
            path=path,
            success=response.success,
            psp_reference=response.psp_reference,
            result_code=response.result_code,
        )
        return response

    def _amount(self, amount_cents: int, currency: str) -> dict[str, Any]:
        return {"value": amount_cents, "currency": currency}

    # =========================================================================
    # Authorisation
    # =========================================================================

    def authorize_payment(
        self,
        reference: str,
        amount_cents: int,
        currency: str,
        payment_data: dict[str, Any] | None = None,
        shopper_reference: str | None = None,
    ) -> GatewayResponse:
        """Authorise a new payment (card data or encrypted fields in ``payment_data``)."""
        payload: dict[str, Any] = {
            "merchantAccount": self.config.merchant_account,
            "reference": reference,
            "amount": self._amount(amount_cents, currency),
            **(payment_data or {}),
        }
        if shopper_reference:
            payload["shopperReference"] = shopper_reference
            payload["recurring"] = {"contract": "RECURRING"}
        return self._call(f"Payment/{PAYMENT_API_VERSION}/authorise", payload, authorisation_response)

    def reauthorize_recurring_payment(
        self,
        reference: str,
        amount_cents: int,
        currency: str,
        shopper_reference: str,
        stored_card_reference: str | None = None,
    ) -> GatewayResponse:
        """Authorise against a stored recurring contract (LATEST when no reference is given)."""
        logger.debug(
            "Recurring authorisation",
            reference=reference,
            shopper=mask_reference(shopper_reference),
            card=mask_reference(stored_card_reference),
        )
        payload = {
            "merchantAccount": self.config.merchant_account,
            "reference": reference,
            "amount": self._amount(amount_cents, currency),
            "shopperReference": shopper_reference,
            "selectedRecurringDetailReference": stored_card_reference or "LATEST",
            "recurring": {"contract": "RECURRING"},
            "shopperInteraction": "ContAuth",
        }
        return self._call(f"Payment/{PAYMENT_API_VERSION}/authorise", payload, authorisation_response)

    # =========================================================================
    # Modifications
    # =========================================================================

    def capture_payment(
        self, psp_reference: str, amount_cents: int, currency: str, reference: str | None = None
    ) -> GatewayResponse:
        payload = {
            "merchantAccount": self.config.merchant_account,
            "originalReference": psp_reference,
            "modificationAmount": self._amount(amount_cents, currency),
        }
        if reference:
            payload["reference"] = reference
        return self._call(
            f"Payment/{PAYMENT_API_VERSION}/capture",
            payload,
            lambda params: modification_response(params, CAPTURE_RECEIVED),
        )

    def cancel_payment(self, psp_reference: str, reference: str | None = None) -> GatewayResponse:
        payload = {
            "merchantAccount": self.config.merchant_account,
            "originalReference": psp_reference,
        }
        if reference:
            payload["reference"] = reference
        return self._call(
            f"Payment/{PAYMENT_API_VERSION}/cancel",
            payload,
            lambda params: modification_response(params, CANCEL_RECEIVED),
        )

    def credit_payment(
        self, psp_reference: str, amount_cents: int, currency: str, reference: str | None = None
    ) -> GatewayResponse:
        """Refund ``amount_cents`` of a captured payment."""
        payload = {
            "merchantAccount": self.config.merchant_account,
            "originalReference": psp_reference,
            "modificationAmount": self._amount(amount_cents, currency),
        }
        if reference:
            payload["reference"] = reference
        return self._call(
            f"Payment/{PAYMENT_API_VERSION}/refund",
            payload,
            lambda params: modification_response(params, REFUND_RECEIVED),
        )

    # =========================================================================
    # Recurring
    # =========================================================================

    def list_stored_payment_methods(self, shopper_reference: str) -> GatewayResponse:
        payload = {
            "merchantAccount": self.config.merchant_account,
            "shopperReference": shopper_reference,
            "recurring": {"contract": "RECURRING"},
        }
        return self._call(
            f"Recurring/{RECURRING_API_VERSION}/listRecurringDetails",
            payload,
            listing_response,
        )
