from paygate.errors import ClientError
from paygate.models.payment import PaymentRequest
from paygate.utils.crypto import content_hash

KEY_PREFIX = "pay_"
MAX_KEY_LENGTH = 255


def derive_idempotency_key(request: PaymentRequest, token: str | None = None) -> str:
    """Return the idempotency key for a logical payment-creation request.

    A caller-supplied ``token`` is used as-is. Without one, the key is a
    SHA-256 hash of the request fields, so resubmitting identical fields maps
    to the same key. Callers creating two genuinely distinct payments with
    identical fields inside the retention window must pass distinct tokens.
    """
    if token is not None:
        token = token.strip()
        if not token or len(token) > MAX_KEY_LENGTH:
            raise ClientError(f"idempotency token must be 1-{MAX_KEY_LENGTH} characters")
        return token
    return KEY_PREFIX + content_hash(request.to_wire())
