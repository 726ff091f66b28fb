import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from urllib.parse import urlparse

from paygate.errors import ClientError


class PaymentStatus(Enum):
    CREATED = "created"
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"
    REFUNDING = "refunding"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_refundable(self) -> bool:
        return self in REFUNDABLE_STATUSES


TERMINAL_STATUSES = frozenset({
    PaymentStatus.FAILED,
    PaymentStatus.EXPIRED,
    PaymentStatus.REFUNDED,
})

REFUNDABLE_STATUSES = frozenset({
    PaymentStatus.PAID,
    PaymentStatus.REFUNDING,
    PaymentStatus.PARTIALLY_REFUNDED,
})

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


@dataclass(frozen=True)
class PaymentRequest:
    """A payment to create. Validated on construction, immutable afterwards."""

    amount: int
    currency: str
    description: str
    redirect_url: str
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount <= 0:
            raise ClientError(f"amount must be a positive integer, got {self.amount!r}")

        currency = str(self.currency).upper()
        if not _CURRENCY_RE.match(currency):
            raise ClientError(f"currency must be a 3-letter ISO 4217 code, got {self.currency!r}")
        object.__setattr__(self, "currency", currency)

        if not isinstance(self.description, str) or not self.description.strip():
            raise ClientError("description must be a non-empty string")

        parsed = urlparse(str(self.redirect_url))
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ClientError(f"redirect_url must be an absolute http(s) URI, got {self.redirect_url!r}")

        metadata = dict(self.metadata or {})
        for key, value in metadata.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise ClientError("metadata keys and values must be strings")
        object.__setattr__(self, "metadata", metadata)

    def to_wire(self) -> dict:
        body = {
            "amount": self.amount,
            "currency": self.currency,
            "description": self.description,
            "redirectUrl": self.redirect_url,
        }
        if self.metadata:
            body["metadata"] = dict(self.metadata)
        return body


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Payment:
    payment_id: str
    amount: int
    currency: str
    status: PaymentStatus = PaymentStatus.CREATED
    payment_url: str | None = None
    description: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    last_transition_at: datetime | None = None
    refunded_amount: int = 0
    pending_refund_amount: int = 0

    def __post_init__(self):
        if self.last_transition_at is None:
            self.last_transition_at = self.created_at

    @property
    def refundable_amount(self) -> int:
        """Amount still available for new refunds (in-flight refunds are reserved)."""
        return self.amount - self.refunded_amount - self.pending_refund_amount
