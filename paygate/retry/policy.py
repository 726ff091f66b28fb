import json
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from paygate.config import GatewayConfig
from paygate.errors import (
    ClientError,
    GatewayError,
    RateLimited,
    RetriesExhausted,
    ServerError,
    TransportError,
)
from paygate.models.attempt import RetryAttempt
from paygate.models.outcome import HttpError, NetworkFailure, Outcome, Timeout


@dataclass(frozen=True)
class Retry:
    after_delay: float


@dataclass(frozen=True)
class GiveUp:
    error: GatewayError


Decision = Retry | GiveUp


def _error_message(body: bytes, default: str) -> str:
    try:
        data = json.loads(body)
    except (ValueError, TypeError):
        return default
    if isinstance(data, dict):
        for field in ("message", "error", "detail"):
            value = data.get(field)
            if isinstance(value, str) and value:
                return value
    return default


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Parse a Retry-After header (delta seconds or HTTP-date) into seconds."""
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - (now or datetime.now(timezone.utc))).total_seconds()
    return max(seconds, 0.0)


def error_from_outcome(outcome: Outcome, retry_after: float | None = None) -> GatewayError:
    """Map a failed transport outcome onto the error taxonomy."""
    if isinstance(outcome, Timeout):
        return TransportError(f"Request timed out after {outcome.elapsed_ms:.0f} ms")
    if isinstance(outcome, NetworkFailure):
        if not outcome.retryable:
            return ClientError(f"Malformed request: {outcome.reason}")
        return TransportError(f"Network failure: {outcome.reason}")
    if isinstance(outcome, HttpError):
        status = outcome.status
        message = _error_message(outcome.body, f"Processor responded with {status}")
        if status == 429:
            return RateLimited(message, retry_after=retry_after, http_status=status)
        if status >= 500:
            return ServerError(message, http_status=status)
        return ClientError(message, http_status=status)
    raise TypeError(f"{type(outcome).__name__} is not a failure outcome")


class RetryPolicy:
    """Decides, per failed attempt, whether and when to try again."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 8.0,
        max_retry_after: float = 60.0,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_retry_after = max_retry_after

    @classmethod
    def from_config(cls, config: GatewayConfig) -> "RetryPolicy":
        return cls(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay_ms / 1000,
            max_delay=config.retry_max_delay_ms / 1000,
            max_retry_after=config.max_retry_after_ms / 1000,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def is_retryable(self, outcome: Outcome) -> bool:
        """Classify a failed outcome.

        Retryable:
        - network failures (except malformed requests) and timeouts
        - 5xx server errors and 429 Too Many Requests
        Not retryable:
        - any other 4xx, and 3xx (redirects are not followed)
        """
        if isinstance(outcome, Timeout):
            return True
        if isinstance(outcome, NetworkFailure):
            return outcome.retryable
        if isinstance(outcome, HttpError):
            return outcome.status == 429 or outcome.status >= 500
        return False

    def next_delay(self, attempt: int) -> float:
        """Backoff in seconds after the given 1-based attempt failed."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def has_attempts_remaining(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    def decide(self, outcome: Outcome, attempt: RetryAttempt) -> Decision:
        retry_after = None
        if isinstance(outcome, HttpError) and outcome.status == 429:
            retry_after = parse_retry_after(outcome.header("Retry-After"))
            if retry_after is not None:
                retry_after = min(retry_after, self.max_retry_after)

        error = error_from_outcome(outcome, retry_after=retry_after)

        if not self.is_retryable(outcome):
            return GiveUp(error)

        if not self.has_attempts_remaining(attempt.number):
            return GiveUp(RetriesExhausted(error, attempts=attempt.number))

        if retry_after is not None:
            return Retry(retry_after)
        return Retry(self.next_delay(attempt.number))
