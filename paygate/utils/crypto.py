import hashlib
import hmac
import json

SIGNATURE_PREFIX = "sha256="


def generate_signature(payload: bytes, secret: str) -> str:
    """Generate an HMAC-SHA256 hex signature over the exact payload bytes."""
    return hmac.new(
        secret.encode("utf-8"),
        payload,
        hashlib.sha256,
    ).hexdigest()


def verify_signature(payload: bytes, secret: str, signature: str) -> bool:
    """Verify a signature header against the payload in constant time.

    Accepts both ``sha256=<hex>`` and a bare hex digest.
    """
    if not signature:
        return False
    candidate = signature.strip()
    if candidate.lower().startswith(SIGNATURE_PREFIX):
        candidate = candidate[len(SIGNATURE_PREFIX):]
    expected = generate_signature(payload, secret)
    return hmac.compare_digest(expected.encode("ascii"), candidate.lower().encode("utf-8"))


def canonical_json(data: dict) -> bytes:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def content_hash(data: dict) -> str:
    return hashlib.sha256(canonical_json(data)).hexdigest()
