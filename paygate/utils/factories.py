import json
import uuid
from datetime import datetime, timezone

from paygate.models.payment import Payment, PaymentRequest, PaymentStatus
from paygate.utils.crypto import SIGNATURE_PREFIX, generate_signature


class PaymentRequestFactory:
    """Factory for creating PaymentRequest instances with sensible defaults."""

    @staticmethod
    def create(**overrides) -> PaymentRequest:
        defaults = {
            "amount": 2000,
            "currency": "PLN",
            "description": f"Order {uuid.uuid4().hex[:8]}",
            "redirect_url": "https://shop.example.com/return",
            "metadata": {},
        }
        defaults.update(overrides)
        return PaymentRequest(**defaults)


class PaymentFactory:
    """Factory for creating tracked Payment instances."""

    @staticmethod
    def create(**overrides) -> Payment:
        defaults = {
            "payment_id": f"tr_{uuid.uuid4().hex[:12]}",
            "amount": 2000,
            "currency": "PLN",
            "status": PaymentStatus.CREATED,
            "description": "Test payment",
            "created_at": datetime.now(timezone.utc),
        }
        defaults.update(overrides)
        return Payment(**defaults)


class WebhookFactory:
    """Builds raw webhook bodies and their signature headers."""

    @staticmethod
    def create_payload(status: str = "paid", **overrides) -> dict:
        payload = {
            "id": f"evt_{uuid.uuid4().hex[:16]}",
            "type": f"payment.{status}",
            "paymentId": f"tr_{uuid.uuid4().hex[:12]}",
            "status": status,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        payload.update(overrides)
        return payload

    @staticmethod
    def create_signed(secret: str, status: str = "paid", **overrides) -> tuple[bytes, str]:
        """Return ``(raw_body, signature_header)`` for a webhook."""
        raw = json.dumps(WebhookFactory.create_payload(status, **overrides)).encode()
        return raw, SIGNATURE_PREFIX + generate_signature(raw, secret)

    @staticmethod
    def sign(raw: bytes, secret: str) -> str:
        return SIGNATURE_PREFIX + generate_signature(raw, secret)
