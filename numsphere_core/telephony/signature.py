"""Twilio webhook signature validation."""

from typing import Mapping, Optional

import structlog
from twilio.request_validator import RequestValidator

logger = structlog.get_logger()


class TwilioSignatureVerifier:
    """
    Validates the X-Twilio-Signature header of incoming webhooks.

    The signature covers the full public URL plus the sorted form
    parameters, so the URL must be the one Twilio was configured with
    (not the internal one behind a proxy).
    """

    HEADER = "X-Twilio-Signature"

    def __init__(self, auth_token: str):
        """
        Initialize verifier.

        Args:
            auth_token: Twilio auth token used as the HMAC key
        """
        self._validator = RequestValidator(auth_token)

    def verify(
        self,
        url: str,
        params: Mapping[str, str],
        signature: Optional[str],
    ) -> bool:
        """
        Validate a webhook signature.

        Args:
            url: Full webhook URL including the query string
            params: Form parameters
            signature: X-Twilio-Signature header value

        Returns:
            True if valid
        """
        if not signature:
            logger.warning("Webhook without signature", url=url)
            return False

        valid = self._validator.validate(url, dict(params), signature)
        if not valid:
            logger.warning("Invalid webhook signature", url=url)
        return valid
