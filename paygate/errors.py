class GatewayError(Exception):
    """Base class for every error surfaced by the gateway client.

    Carries enough structure for the caller to decide what to do next:
    a machine-readable ``kind``, a human message, whether retrying the same
    call could succeed, and the HTTP status when one was received.
    """

    kind = "gateway_error"
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        retryable: bool | None = None,
        http_status: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.retryable = self.default_retryable if retryable is None else retryable
        self.http_status = http_status
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
            "http_status": self.http_status,
            "details": dict(self.details),
        }

    def __str__(self) -> str:
        if self.http_status is not None:
            return f"{self.message} (HTTP {self.http_status})"
        return self.message


class ConfigError(GatewayError):
    """Raised when the supplied configuration is invalid."""

    kind = "config_error"


class TransportError(GatewayError):
    """Network failure or timeout talking to the processor."""

    kind = "transport_error"
    default_retryable = True


class RateLimited(GatewayError):
    kind = "rate_limited"
    default_retryable = True

    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ServerError(GatewayError):
    kind = "server_error"
    default_retryable = True


class ClientError(GatewayError):
    """The processor rejected the request, or it was malformed before sending."""

    kind = "client_error"


class ResponseFormatError(GatewayError):
    """A successful response whose body could not be understood."""

    kind = "response_format_error"


class VerificationError(GatewayError):
    """A webhook failed authentication or could not be decoded."""

    kind = "verification_error"

    INVALID_SIGNATURE = "InvalidSignature"
    MALFORMED_PAYLOAD = "MalformedPayload"

    def __init__(self, reason: str, message: str | None = None):
        super().__init__(message or reason, details={"reason": reason})
        self.reason = reason


class StateConflict(GatewayError):
    kind = "state_conflict"


class InvalidRefundAmount(GatewayError):
    kind = "invalid_refund_amount"


class RetriesExhausted(GatewayError):
    """Terminal error after the retry budget ran out.

    Always non-retryable, even when ``last_error`` was, so callers do not
    wrap the client in a second retry loop.
    """

    kind = "retries_exhausted"

    def __init__(self, last_error: GatewayError, attempts: int):
        super().__init__(
            f"Gave up after {attempts} attempts: {last_error.message}",
            retryable=False,
            http_status=last_error.http_status,
            details={"attempts": attempts, "last_error": last_error.kind},
        )
        self.last_error = last_error
        self.attempts = attempts


class OperationCancelled(GatewayError):
    kind = "cancelled"

    def __init__(self, message: str = "Operation cancelled", *, attempts: int = 0):
        super().__init__(message, details={"attempts": attempts})
        self.attempts = attempts


class PaymentNotFound(GatewayError):
    """The payment is not tracked locally (or unknown to the processor)."""

    kind = "payment_not_found"
