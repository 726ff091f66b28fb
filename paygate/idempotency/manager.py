import logging
from typing import Callable

from paygate.cancellation import CancellationToken
from paygate.errors import ClientError, OperationCancelled
from paygate.idempotency.store import IdempotencyStore, InMemoryIdempotencyStore, RecordState
from paygate.models.payment import Payment

logger = logging.getLogger(__name__)

_WAIT_POLL_SECONDS = 0.05


def _is_cacheable(exc: BaseException) -> bool:
    """Only outright rejections are final; anything else may not have reached the processor.

    ``RetriesExhausted`` is not retryable by the caller's executor, but it
    still releases the key: a later submission dispatches again under the
    same ``Idempotency-Key`` and the processor deduplicates it.
    """
    return isinstance(exc, ClientError)


class IdempotencyManager:
    """Executes a logical payment-creation request at most once per key.

    The first submission for a key dispatches. Concurrent submissions with
    the same key wait for that dispatch and share its result. Later
    submissions get the cached Payment, or the cached rejection, until the
    key expires.
    """

    def __init__(self, store: IdempotencyStore | None = None, ttl: float = 24 * 60 * 60):
        self.store = store or InMemoryIdempotencyStore(ttl=ttl)

    def submit(
        self,
        key: str,
        dispatch: Callable[[], Payment],
        cancel: CancellationToken | None = None,
    ) -> Payment:
        while True:
            record, is_leader = self.store.claim(key)

            if is_leader:
                return self._dispatch(key, record, dispatch)

            if record.state is RecordState.IN_FLIGHT:
                logger.info("Idempotency key %s in flight, waiting for its result", key)
            self._wait(record, cancel)

            exc = record.future.exception()
            if isinstance(exc, OperationCancelled):
                # The leader's caller gave up; that says nothing about this caller.
                continue
            if exc is not None:
                raise exc
            return record.future.result()

    def _dispatch(self, key, record, dispatch) -> Payment:
        try:
            payment = dispatch()
        except BaseException as exc:
            if _is_cacheable(exc):
                self.store.complete(key, RecordState.FAILED)
                logger.info("Idempotency key %s rejected, caching failure: %s", key, exc)
            else:
                self.store.release(key)
            record.future.set_exception(exc)
            raise

        self.store.complete(key, RecordState.COMPLETED)
        record.future.set_result(payment)
        return payment

    @staticmethod
    def _wait(record, cancel: CancellationToken | None) -> None:
        if cancel is None:
            record.future.exception()
            return
        while not record.future.done():
            if cancel.wait(_WAIT_POLL_SECONDS):
                raise OperationCancelled(f"Cancelled while waiting on idempotency key {record.key}")
