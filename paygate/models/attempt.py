from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class RetryAttempt:
    """Position of the current call within one retried operation.

    ``number`` is 1-based: the first call is attempt 1, the first retry is
    attempt 2.
    """

    number: int
    elapsed_delay: float = 0.0
    prior_retryable: bool | None = None

    def next(self, delay: float, retryable: bool) -> "RetryAttempt":
        return RetryAttempt(
            number=self.number + 1,
            elapsed_delay=self.elapsed_delay + delay,
            prior_retryable=retryable,
        )


@dataclass
class AttemptRecord:
    attempt_id: str
    idempotency_key: str | None
    method: str
    path: str
    status_code: int | None
    timestamp: datetime
    response_time_ms: float
    error: str | None = None
