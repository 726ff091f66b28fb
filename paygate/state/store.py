import threading
from abc import ABC, abstractmethod

from paygate.models.payment import Payment


class PaymentStore(ABC):
    """Persistence hook for payments tracked by the state machine.

    Callers back this with their own database; the core only calls ``get``
    before a transition and ``save`` after one.
    """

    @abstractmethod
    def get(self, payment_id: str) -> Payment | None:
        ...

    @abstractmethod
    def save(self, payment: Payment) -> None:
        ...


class InMemoryPaymentStore(PaymentStore):
    def __init__(self):
        self._payments: dict[str, Payment] = {}
        self._lock = threading.Lock()

    def get(self, payment_id: str) -> Payment | None:
        with self._lock:
            return self._payments.get(payment_id)

    def save(self, payment: Payment) -> None:
        with self._lock:
            self._payments[payment.payment_id] = payment

    def __len__(self) -> int:
        with self._lock:
            return len(self._payments)
