from .attempt import AttemptRecord, RetryAttempt
from .outcome import Cancelled, HttpError, NetworkFailure, Outcome, Success, Timeout
from .payment import Payment, PaymentRequest, PaymentStatus
from .refund import RefundRequest, RefundResult, RefundStatus
from .webhook import WebhookEvent

__all__ = [
    "Payment", "PaymentRequest", "PaymentStatus",
    "RefundRequest", "RefundResult", "RefundStatus",
    "WebhookEvent",
    "AttemptRecord", "RetryAttempt",
    "Outcome", "Success", "NetworkFailure", "Timeout", "HttpError", "Cancelled",
]
