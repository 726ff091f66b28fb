from .crypto import content_hash, generate_signature, verify_signature
from .factories import PaymentFactory, PaymentRequestFactory, WebhookFactory
from .locks import KeyedLocks

__all__ = [
    "content_hash", "generate_signature", "verify_signature",
    "PaymentFactory", "PaymentRequestFactory", "WebhookFactory",
    "KeyedLocks",
]
