import json
from datetime import datetime

from paygate.errors import VerificationError
from paygate.models.payment import PaymentStatus
from paygate.models.webhook import WebhookEvent

REQUIRED_FIELDS = ("id", "type", "paymentId", "status")


def _malformed(message: str) -> VerificationError:
    return VerificationError(VerificationError.MALFORMED_PAYLOAD, message)


def parse_event(raw_payload: bytes, signature: str = "") -> WebhookEvent:
    """Decode an already-authenticated webhook body.

    Raises:
        VerificationError: with reason ``MalformedPayload`` for anything that
            is not a JSON object with the required fields and a known status.
    """
    try:
        data = json.loads(raw_payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise _malformed(f"Webhook body is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise _malformed("Webhook body must be a JSON object")

    missing = [f for f in REQUIRED_FIELDS if not isinstance(data.get(f), str) or not data[f]]
    if missing:
        raise _malformed(f"Webhook body missing fields: {missing}")

    try:
        status = PaymentStatus(data["status"])
    except ValueError as exc:
        raise _malformed(f"Unknown payment status {data['status']!r}") from exc

    refunded_amount = data.get("refundedAmount")
    if refunded_amount is not None:
        if isinstance(refunded_amount, bool) or not isinstance(refunded_amount, int) or refunded_amount < 0:
            raise _malformed(f"refundedAmount must be a non-negative integer, got {refunded_amount!r}")

    occurred_at = None
    if data.get("createdAt") is not None:
        try:
            occurred_at = datetime.fromisoformat(str(data["createdAt"]))
        except ValueError as exc:
            raise _malformed(f"createdAt is not an ISO 8601 timestamp: {data['createdAt']!r}") from exc

    extra = data.get("data") or {}
    if not isinstance(extra, dict):
        raise _malformed("data must be a JSON object")

    return WebhookEvent(
        event_id=data["id"],
        event_type=data["type"],
        payment_id=data["paymentId"],
        status=status,
        raw_payload=raw_payload,
        signature=signature,
        refunded_amount=refunded_amount,
        occurred_at=occurred_at,
        data=extra,
    )
