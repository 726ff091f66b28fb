from .machine import PaymentStateMachine, TRANSITIONS, TransitionResult, can_transition
from .store import InMemoryPaymentStore, PaymentStore

__all__ = [
    "PaymentStateMachine",
    "TransitionResult",
    "TRANSITIONS",
    "can_transition",
    "PaymentStore",
    "InMemoryPaymentStore",
]
