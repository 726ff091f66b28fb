import threading
import time
from collections import Counter, deque


class MetricsCollector:
    """Rolling-window success/failure counts per category ("dispatch", "webhook")."""

    def __init__(self, window_seconds: float = 300):
        self._window_seconds = window_seconds
        self._successes: dict[str, deque[float]] = {}
        self._failures: dict[str, deque[float]] = {}
        self._failure_reasons: Counter = Counter()
        self._lock = threading.Lock()

    def record_success(self, category: str) -> None:
        with self._lock:
            self._successes.setdefault(category, deque()).append(time.monotonic())

    def record_failure(self, category: str, reason: str | None = None) -> None:
        with self._lock:
            self._failures.setdefault(category, deque()).append(time.monotonic())
            if reason:
                self._failure_reasons[(category, reason)] += 1

    def _prune(self, data: dict[str, deque[float]], now: float) -> None:
        cutoff = now - self._window_seconds
        for timestamps in data.values():
            while timestamps and timestamps[0] < cutoff:
                timestamps.popleft()

    def _count(self, data: dict[str, deque[float]], category: str | None) -> int:
        if category is None:
            return sum(len(v) for v in data.values())
        return len(data.get(category, ()))

    def _window(self, category: str | None) -> tuple[int, int]:
        now = time.monotonic()
        self._prune(self._successes, now)
        self._prune(self._failures, now)
        return self._count(self._successes, category), self._count(self._failures, category)

    def failure_rate(self, category: str | None = None) -> float:
        """Failure rate in the current rolling window (0.0 to 1.0)."""
        with self._lock:
            successes, failures = self._window(category)
            total = successes + failures
            if total == 0:
                return 0.0
            return failures / total

    def total_in_window(self, category: str | None = None) -> int:
        with self._lock:
            return sum(self._window(category))

    def failure_count_in_window(self, category: str | None = None) -> int:
        with self._lock:
            return self._window(category)[1]

    def success_count_in_window(self, category: str | None = None) -> int:
        with self._lock:
            return self._window(category)[0]

    def failure_reasons(self, category: str) -> dict[str, int]:
        """Lifetime failure counts by reason (not windowed)."""
        with self._lock:
            return {
                reason: count
                for (cat, reason), count in self._failure_reasons.items()
                if cat == category
            }

    def reset(self) -> None:
        with self._lock:
            self._successes.clear()
            self._failures.clear()
            self._failure_reasons.clear()
