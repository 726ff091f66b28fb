import logging

from paygate.errors import ConfigError, VerificationError
from paygate.models.webhook import WebhookEvent
from paygate.utils.crypto import verify_signature
from paygate.webhooks.parser import parse_event

logger = logging.getLogger(__name__)


class WebhookVerifier:
    def __init__(self, shared_secret: str | None = None):
        self.shared_secret = shared_secret

    def verify_and_parse(
        self,
        raw_payload: bytes | str,
        signature_header: str | None,
        shared_secret: str | None = None,
    ) -> WebhookEvent:
        """Authenticate a webhook body, then decode it.

        The signature is checked over the exact bytes received before any
        decoding happens, so a forged body is never parsed.

        Raises:
            VerificationError: ``InvalidSignature`` or ``MalformedPayload``.
            ConfigError: No shared secret is configured.
        """
        secret = shared_secret or self.shared_secret
        if not secret:
            raise ConfigError("shared_secret is required to verify webhooks")

        if isinstance(raw_payload, str):
            raw_payload = raw_payload.encode("utf-8")

        if not verify_signature(raw_payload, secret, signature_header or ""):
            logger.warning("Rejected webhook with invalid signature (%d bytes)", len(raw_payload))
            raise VerificationError(
                VerificationError.INVALID_SIGNATURE,
                "Webhook signature does not match payload",
            )

        return parse_event(raw_payload, signature_header or "")
