from .executor import RetryingExecutor
from .policy import GiveUp, Retry, RetryPolicy, error_from_outcome, parse_retry_after

__all__ = [
    "RetryingExecutor",
    "RetryPolicy",
    "Retry",
    "GiveUp",
    "error_from_outcome",
    "parse_retry_after",
]
