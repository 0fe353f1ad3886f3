"""
Normalized gateway responses.

Every gateway call returns a GatewayResponse, including calls that never
reached the gateway, so callers always have a message to log.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# resultCode values of an accepted authorisation
AUTHORISED_RESULT_CODES = frozenset({"Authorised", "Received"})
REDIRECT_RESULT_CODE = "RedirectShopper"

# Acknowledgements of modification requests; the outcome arrives later as a notification
CAPTURE_RECEIVED = "[capture-received]"
CANCEL_RECEIVED = "[cancel-received]"
REFUND_RECEIVED = "[refund-received]"


@dataclass
class GatewayResponse:
    """Outcome of one gateway call."""

    success: bool
    message: str
    params: dict[str, Any] = field(default_factory=dict)
    psp_reference: str | None = None
    result_code: str | None = None
    refusal_reason: str | None = None
    md: str | None = None
    pa_request: str | None = None
    issuer_url: str | None = None

    @property
    def redirect(self) -> bool:
        """True when the shopper must complete a 3-D Secure challenge."""
        return self.result_code == REDIRECT_RESULT_CODE

    @property
    def authorization(self) -> str | None:
        return self.psp_reference


@dataclass(frozen=True)
class StoredCardDetail:
    """One stored recurring contract returned by listRecurringDetails."""

    reference: str
    variant: str | None
    created_at: datetime | None
    last_digits: str | None
    expiry_month: str | None
    expiry_year: str | None
    holder_name: str | None


def _pretty(params: dict[str, Any]) -> str:
    return json.dumps(params, indent=2)


def authorisation_response(params: dict[str, Any]) -> GatewayResponse:
    result_code = params.get("resultCode")
    refusal_reason = params.get("refusalReason")
    success = result_code in AUTHORISED_RESULT_CODES

    if success:
        message = _pretty(params)
    else:
        message = refusal_reason or params.get("message") or result_code or "Authorisation failed"

    return GatewayResponse(
        success=success,
        message=message,
        params=params,
        psp_reference=params.get("pspReference"),
        result_code=result_code,
        refusal_reason=refusal_reason,
        md=params.get("md"),
        pa_request=params.get("paRequest"),
        issuer_url=params.get("issuerUrl"),
    )


def modification_response(params: dict[str, Any], acknowledgement: str) -> GatewayResponse:
    success = params.get("response") == acknowledgement

    if success:
        message = _pretty(params)
    else:
        message = params.get("response") or params.get("message") or "Modification failed"

    return GatewayResponse(
        success=success,
        message=message,
        params=params,
        psp_reference=params.get("pspReference"),
        result_code=params.get("resultCode"),
        refusal_reason=params.get("refusalReason"),
    )


def listing_response(params: dict[str, Any]) -> GatewayResponse:
    # A shopper without stored contracts gets an empty object back
    if "errorCode" in params:
        return GatewayResponse(
            success=False,
            message=params.get("message") or params["errorCode"],
            params=params,
        )
    return GatewayResponse(success=True, message=_pretty(params), params=params)


def error_response(error: Exception | str) -> GatewayResponse:
    """A call that failed before a gateway reply could be read."""
    return GatewayResponse(success=False, message=f"API request error: {error}")


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def stored_card_details(response: GatewayResponse) -> list[StoredCardDetail]:
    """Stored card contracts in a listRecurringDetails response, oldest first."""
    cards = []
    for item in response.params.get("details") or []:
        detail = item.get("RecurringDetail", item)
        card = detail.get("card")
        if not card:
            continue
        month = card.get("expiryMonth")
        year = card.get("expiryYear")
        cards.append(
            StoredCardDetail(
                reference=detail.get("recurringDetailReference", ""),
                variant=detail.get("variant"),
                created_at=_parse_datetime(detail.get("creationDate")),
                last_digits=card.get("number"),
                expiry_month=f"{int(month):02d}" if month else None,
                expiry_year=f"{int(year):04d}" if year else None,
                holder_name=card.get("holderName"),
            )
        )
    cards.sort(key=lambda c: c.created_at.timestamp() if c.created_at else float("-inf"))
    return cards
