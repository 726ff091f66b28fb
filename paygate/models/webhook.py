from dataclasses import dataclass, field
from datetime import datetime

from paygate.models.payment import PaymentStatus


@dataclass(frozen=True)
class WebhookEvent:
    event_id: str
    event_type: str  # "payment.paid", "payment.refunded", etc.
    payment_id: str
    status: PaymentStatus
    raw_payload: bytes
    signature: str
    refunded_amount: int | None = None
    occurred_at: datetime | None = None
    data: dict = field(default_factory=dict)
