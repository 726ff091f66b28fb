import threading

from paygate.models.attempt import AttemptRecord


class AttemptLog:
    """Thread-safe record of every request the transport has sent."""

    def __init__(self, max_records: int = 10_000):
        self._records: list[AttemptRecord] = []
        self._max_records = max_records
        self._lock = threading.Lock()

    def log(self, record: AttemptRecord) -> None:
        with self._lock:
            self._records.append(record)
            overflow = len(self._records) - self._max_records
            if overflow > 0:
                del self._records[:overflow]

    def get_attempts(self, idempotency_key: str | None = None) -> list[AttemptRecord]:
        with self._lock:
            if idempotency_key is None:
                return list(self._records)
            return [r for r in self._records if r.idempotency_key == idempotency_key]

    def get_failed_attempts(self) -> list[AttemptRecord]:
        with self._lock:
            return [
                r for r in self._records
                if r.status_code is None or r.status_code >= 400
            ]

    def count(self, method: str | None = None, path: str | None = None) -> int:
        with self._lock:
            return sum(
                1 for r in self._records
                if (method is None or r.method == method)
                and (path is None or r.path == path)
            )

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
