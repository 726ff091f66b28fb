import threading
import time
from collections import OrderedDict


class EventDeduplicator:
    """Bounded set of recently applied webhook event ids.

    Entries expire after ``ttl`` seconds; when full, the oldest entry is
    evicted first.
    """

    def __init__(self, max_entries: int = 100_000, ttl: float = 72 * 60 * 60, clock=time.monotonic):
        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._seen: OrderedDict[str, float] = OrderedDict()
        self._lock = threading.Lock()

    def _evict(self, now: float) -> None:
        while self._seen:
            oldest, expires_at = next(iter(self._seen.items()))
            if expires_at > now and len(self._seen) <= self.max_entries:
                break
            del self._seen[oldest]

    def seen(self, event_id: str) -> bool:
        with self._lock:
            expires_at = self._seen.get(event_id)
            if expires_at is None:
                return False
            if expires_at <= self._clock():
                del self._seen[event_id]
                return False
            return True

    def mark(self, event_id: str) -> None:
        with self._lock:
            now = self._clock()
            self._seen[event_id] = now + self.ttl
            self._seen.move_to_end(event_id)
            self._evict(now)

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def clear(self) -> None:
        with self._lock:
            self._seen.clear()
