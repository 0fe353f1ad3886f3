"""
Hosted payment page signature verification.

The shopper returns from the hosted payment page with a ``merchantSig``:
base64(HMAC-SHA1(shared_secret, authResult + pspReference +
merchantReference + skinCode + merchantReturnData)).
"""

import base64
import hashlib
import hmac
from collections.abc import Mapping

from shared.config.logging import get_logger

logger = get_logger(__name__)


class MerchantSignature:
    """
    HMAC signer for redirect-return parameters.

    Usage (verification):
        signer = MerchantSignature(secret=config.shared_secret)
        if signer.verify(request.query_params):
            # Redirect parameters are authentic
    """

    SIGNED_FIELDS = (
        "authResult",
        "pspReference",
        "merchantReference",
        "skinCode",
        "merchantReturnData",
    )
    SIGNATURE_FIELD = "merchantSig"

    def __init__(self, secret: str):
        self._secret = secret.encode()

    def signing_string(self, params: Mapping[str, str]) -> str:
        """Concatenate the signed fields; absent fields count as empty."""
        return "".join(params.get(field) or "" for field in self.SIGNED_FIELDS)

    def sign(self, params: Mapping[str, str]) -> str:
        digest = hmac.new(
            self._secret,
            self.signing_string(params).encode(),
            hashlib.sha1,
        ).digest()
        return base64.b64encode(digest).decode()

    def verify(self, params: Mapping[str, str]) -> bool:
        """
        Verify the ``merchantSig`` carried in ``params``.

        Returns False when the secret is unset or the signature is missing.
        """
        if not self._secret:
            logger.warning("Redirect signature rejected - no shared secret configured")
            return False

        signature = params.get(self.SIGNATURE_FIELD)
        if not signature:
            logger.warning("Redirect is missing merchantSig")
            return False

        # Constant-time comparison to prevent timing attacks
        is_valid = hmac.compare_digest(self.sign(params), signature)

        if not is_valid:
            logger.warning(
                "Redirect signature mismatch",
                merchant_reference=params.get("merchantReference"),
            )

        return is_valid
