import logging
import time

from paygate.cancellation import CancellationToken
from paygate.errors import OperationCancelled, RetriesExhausted
from paygate.models.attempt import RetryAttempt
from paygate.models.outcome import Cancelled, Success
from paygate.observability.metrics import MetricsCollector
from paygate.retry.policy import GiveUp, RetryPolicy
from paygate.transport.adapter import ApiRequest, TransportAdapter

logger = logging.getLogger(__name__)


class RetryingExecutor:
    """Drives one logical request through the transport until it succeeds or the policy gives up."""

    def __init__(
        self,
        transport: TransportAdapter,
        policy: RetryPolicy,
        metrics: MetricsCollector | None = None,
    ):
        self.transport = transport
        self.policy = policy
        self.metrics = metrics

    def execute(self, request: ApiRequest, cancel: CancellationToken | None = None) -> Success:
        """Send ``request`` with retries.

        Args:
            request: The request to deliver. Its idempotency key, if any, is
                sent unchanged on every attempt.
            cancel: Optional token; cancelling it interrupts the backoff sleep
                and stops further attempts.

        Returns:
            The first successful outcome.

        Raises:
            OperationCancelled: The token was cancelled.
            RetriesExhausted: Every allowed attempt failed with a retryable error.
            GatewayError: A non-retryable failure on any attempt.
        """
        attempt = RetryAttempt(number=1)

        while True:
            outcome = self.transport.send(request, cancel)

            if isinstance(outcome, Cancelled):
                self._record("cancelled")
                raise OperationCancelled(
                    f"{request.method} {request.path} cancelled: {outcome.reason}",
                    attempts=attempt.number,
                )

            if isinstance(outcome, Success):
                self._record("success")
                return outcome

            decision = self.policy.decide(outcome, attempt)
            if isinstance(decision, GiveUp):
                error = decision.error
                if isinstance(error, RetriesExhausted):
                    self._record("exhausted")
                    logger.warning(
                        "%s %s gave up after %d attempts: %s",
                        request.method, request.path, attempt.number, error.last_error,
                    )
                else:
                    self._record("rejected")
                    logger.info(
                        "%s %s rejected on attempt %d: %s",
                        request.method, request.path, attempt.number, error,
                    )
                raise error

            logger.warning(
                "%s %s attempt %d failed (%s), retrying in %.2fs",
                request.method, request.path, attempt.number,
                type(outcome).__name__, decision.after_delay,
            )
            if cancel is None:
                if decision.after_delay > 0:
                    time.sleep(decision.after_delay)
            elif cancel.wait(decision.after_delay) or cancel.cancelled:
                self._record("cancelled")
                raise OperationCancelled(
                    f"{request.method} {request.path} cancelled during backoff: {cancel.reason}",
                    attempts=attempt.number,
                )

            attempt = attempt.next(decision.after_delay, retryable=True)

    def _record(self, result: str) -> None:
        if self.metrics is None:
            return
        if result == "success":
            self.metrics.record_success("dispatch")
        else:
            self.metrics.record_failure("dispatch", reason=result)
