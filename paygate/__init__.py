"""
paygate: client core for a remote payment processor.

Re-exports the pieces integrators need so they can ``from paygate import ...``
without navigating the package.
"""

__version__ = "0.4.0"

from .cancellation import CancellationToken
from .client import PaymentGatewayClient
from .config import Environment, GatewayConfig
from .errors import (
    ClientError,
    ConfigError,
    GatewayError,
    InvalidRefundAmount,
    OperationCancelled,
    RateLimited,
    ResponseFormatError,
    RetriesExhausted,
    ServerError,
    StateConflict,
    TransportError,
    VerificationError,
)
from .models import (
    Payment,
    PaymentRequest,
    PaymentStatus,
    RefundResult,
    RefundStatus,
    WebhookEvent,
)
from .webhooks import WebhookOutcome, WebhookResult

__all__ = (
    "__version__",
    "CancellationToken",
    "ClientError",
    "ConfigError",
    "Environment",
    "GatewayConfig",
    "GatewayError",
    "InvalidRefundAmount",
    "OperationCancelled",
    "Payment",
    "PaymentGatewayClient",
    "PaymentRequest",
    "PaymentStatus",
    "RateLimited",
    "RefundResult",
    "RefundStatus",
    "ResponseFormatError",
    "RetriesExhausted",
    "ServerError",
    "StateConflict",
    "TransportError",
    "VerificationError",
    "WebhookEvent",
    "WebhookOutcome",
    "WebhookResult",
)
