from paygate.utils.crypto import SIGNATURE_PREFIX, generate_signature, verify_signature

SIGNATURE_HEADER = "X-Paygate-Signature"


class WebhookSigner:
    """Signs and verifies raw webhook bodies using HMAC-SHA256."""

    def __init__(self, secret: str):
        self.secret = secret

    def sign(self, payload: bytes) -> str:
        return generate_signature(payload, self.secret)

    def header_value(self, payload: bytes) -> str:
        return SIGNATURE_PREFIX + self.sign(payload)

    def verify(self, payload: bytes, signature: str) -> bool:
        return verify_signature(payload, self.secret, signature)
