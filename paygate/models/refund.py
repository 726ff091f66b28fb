from dataclasses import dataclass
from enum import Enum


class RefundStatus(Enum):
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True)
class RefundRequest:
    payment_id: str
    amount: int

    def to_wire(self) -> dict:
        return {"amount": self.amount}


@dataclass(frozen=True)
class RefundResult:
    status: RefundStatus
    amount: int
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is RefundStatus.SUCCESS
