import threading

from paygate.errors import OperationCancelled


class CancellationToken:
    """Caller-owned signal that aborts an operation between network calls.

    Cancelling wakes any backoff sleep immediately. A request already on the
    wire runs until it returns or times out, and its result is discarded.
    """

    def __init__(self):
        self._event = threading.Event()
        self._reason = "cancelled"

    def cancel(self, reason: str = "cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``. Returns True if cancelled meanwhile."""
        return self._event.wait(timeout=seconds)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled(f"Operation cancelled: {self._reason}")
