"""
Payment lifecycle.

    created -> pending -> {paid, failed, expired}
    paid -> refunding -> {refunded, partially_refunded}
    partially_refunded -> {refunding, refunded}

Events (webhooks, polls) may only move a payment forward. Anything else,
including redelivered and out-of-order events, is ignored rather than
treated as an error.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from paygate.errors import InvalidRefundAmount, PaymentNotFound, StateConflict
from paygate.models.payment import Payment, PaymentStatus
from paygate.state.store import InMemoryPaymentStore, PaymentStore
from paygate.utils.locks import KeyedLocks

logger = logging.getLogger(__name__)

S = PaymentStatus

TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    S.CREATED: frozenset({S.PENDING, S.PAID, S.FAILED, S.EXPIRED}),
    S.PENDING: frozenset({S.PAID, S.FAILED, S.EXPIRED}),
    S.PAID: frozenset({S.REFUNDING, S.PARTIALLY_REFUNDED, S.REFUNDED}),
    S.REFUNDING: frozenset({S.PARTIALLY_REFUNDED, S.REFUNDED}),
    S.PARTIALLY_REFUNDED: frozenset({S.REFUNDING, S.REFUNDED}),
    S.FAILED: frozenset(),
    S.EXPIRED: frozenset(),
    S.REFUNDED: frozenset(),
}


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in TRANSITIONS[current]


@dataclass(frozen=True)
class TransitionResult:
    payment_id: str
    previous: PaymentStatus
    current: PaymentStatus
    applied: bool
    reason: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentStateMachine:
    def __init__(self, store: PaymentStore | None = None):
        self.store = store or InMemoryPaymentStore()
        self._locks = KeyedLocks()

    def track(self, payment: Payment) -> Payment:
        """Start tracking a payment (normally one just created by the client)."""
        with self._locks.hold(payment.payment_id):
            existing = self.store.get(payment.payment_id)
            if existing is not None:
                return existing
            self.store.save(payment)
            return payment

    def get(self, payment_id: str) -> Payment:
        payment = self.store.get(payment_id)
        if payment is None:
            raise PaymentNotFound(f"Payment {payment_id} is not tracked")
        return payment

    def apply(
        self,
        payment_id: str,
        status: PaymentStatus,
        *,
        event_id: str | None = None,
        refunded_amount: int | None = None,
    ) -> TransitionResult:
        """Apply a status reported by the processor.

        Raises:
            PaymentNotFound: The payment is not tracked.
        """
        with self._locks.hold(payment_id):
            payment = self.get(payment_id)
            previous = payment.status

            if status is previous:
                if status is S.PARTIALLY_REFUNDED and self._sync_refunded(payment, refunded_amount):
                    payment.last_transition_at = _utcnow()
                    self.store.save(payment)
                    return TransitionResult(payment_id, previous, status, True)
                return self._ignored(payment, status, event_id, "already in status")

            if not can_transition(previous, status):
                reason = "terminal status" if previous.is_terminal else "not a forward transition"
                return self._ignored(payment, status, event_id, reason)

            if status is S.REFUNDED:
                payment.refunded_amount = payment.amount
                payment.pending_refund_amount = 0
            elif status is S.PARTIALLY_REFUNDED:
                self._sync_refunded(payment, refunded_amount)

            self._set_status(payment, status, event_id)
            return TransitionResult(payment_id, previous, status, True)

    def reserve_refund(self, payment_id: str, amount: int) -> Payment:
        """Validate a refund and reserve its amount, moving the payment to ``refunding``.

        Raises:
            InvalidRefundAmount: ``amount`` is not positive or exceeds the
                remaining refundable balance. No state changes.
            StateConflict: The payment has not been paid.
        """
        with self._locks.hold(payment_id):
            payment = self.get(payment_id)

            if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
                raise InvalidRefundAmount(f"Refund amount must be a positive integer, got {amount!r}")
            if amount > payment.refundable_amount:
                raise InvalidRefundAmount(
                    f"Refund of {amount} exceeds remaining refundable balance "
                    f"{payment.refundable_amount} for payment {payment_id}",
                    details={"requested": amount, "refundable": payment.refundable_amount},
                )
            if not payment.status.is_refundable:
                raise StateConflict(
                    f"Cannot refund payment {payment_id} in status {payment.status.value}",
                    details={"status": payment.status.value},
                )

            payment.pending_refund_amount += amount
            if payment.status is not S.REFUNDING:
                self._set_status(payment, S.REFUNDING)
            else:
                self.store.save(payment)
            return payment

    def settle_refund(self, payment_id: str, amount: int) -> Payment:
        """Book a reserved refund as completed.

        Only the part of ``amount`` still reserved is booked: a webhook or
        poll may already have moved it from pending to refunded.
        """
        with self._locks.hold(payment_id):
            payment = self.get(payment_id)
            settled = min(amount, payment.pending_refund_amount)
            payment.pending_refund_amount -= settled
            payment.refunded_amount = min(payment.refunded_amount + settled, payment.amount)
            self._settle_status(payment)
            return payment

    def release_refund(self, payment_id: str, amount: int) -> Payment:
        """Drop a reservation for a refund that failed or never reached the processor."""
        with self._locks.hold(payment_id):
            payment = self.get(payment_id)
            payment.pending_refund_amount = max(payment.pending_refund_amount - amount, 0)
            self._settle_status(payment)
            return payment

    def _settle_status(self, payment: Payment) -> None:
        if payment.status is S.REFUNDED:
            self.store.save(payment)
            return
        if payment.pending_refund_amount > 0:
            target = S.REFUNDING
        elif payment.refunded_amount >= payment.amount:
            target = S.REFUNDED
        elif payment.refunded_amount > 0:
            target = S.PARTIALLY_REFUNDED
        else:
            target = S.PAID
        if target is payment.status:
            self.store.save(payment)
        else:
            self._set_status(payment, target)

    @staticmethod
    def _sync_refunded(payment: Payment, refunded_amount: int | None) -> bool:
        if refunded_amount is None or refunded_amount <= payment.refunded_amount:
            return False
        settled = min(refunded_amount, payment.amount) - payment.refunded_amount
        payment.refunded_amount += settled
        payment.pending_refund_amount = max(payment.pending_refund_amount - settled, 0)
        return True

    def _set_status(self, payment: Payment, status: PaymentStatus, event_id: str | None = None) -> None:
        previous = payment.status
        payment.status = status
        payment.last_transition_at = _utcnow()
        self.store.save(payment)
        logger.info(
            "Payment %s: %s -> %s%s",
            payment.payment_id, previous.value, status.value,
            f" (event {event_id})" if event_id else "",
        )

    @staticmethod
    def _ignored(payment: Payment, status: PaymentStatus, event_id: str | None, reason: str) -> TransitionResult:
        logger.debug(
            "Ignoring %s for payment %s in status %s (%s)%s",
            status.value, payment.payment_id, payment.status.value, reason,
            f" event {event_id}" if event_id else "",
        )
        return TransitionResult(payment.payment_id, payment.status, payment.status, False, reason)
