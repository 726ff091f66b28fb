import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum


class RecordState(Enum):
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class IdempotencyRecord:
    key: str
    state: RecordState
    expires_at: float
    # Resolved with the Payment, or with the non-retryable error
    future: Future = field(default_factory=Future)

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class IdempotencyStore(ABC):
    """Registry mapping idempotency key -> record.

    Implementations must make ``claim`` atomic per key: exactly one caller
    gets ``(record, True)`` for a key that has no live record.
    """

    @abstractmethod
    def claim(self, key: str) -> tuple[IdempotencyRecord, bool]:
        """Return the live record for ``key``, creating an in-flight one if absent."""

    @abstractmethod
    def complete(self, key: str, state: RecordState) -> None:
        """Mark the record as finished; its retention window restarts."""

    @abstractmethod
    def release(self, key: str) -> None:
        """Forget the record so a later submission can dispatch again."""

    @abstractmethod
    def get(self, key: str) -> IdempotencyRecord | None:
        ...


class InMemoryIdempotencyStore(IdempotencyStore):
    """Process-local store with lazy expiry.

    The container lock guards dictionary bookkeeping only; dispatch never
    happens while it is held.
    """

    def __init__(self, ttl: float = 24 * 60 * 60, clock=time.monotonic):
        self._ttl = ttl
        self._clock = clock
        self._records: OrderedDict[str, IdempotencyRecord] = OrderedDict()
        self._lock = threading.Lock()

    def _purge(self, now: float) -> None:
        # Records are ordered by expiry: claim appends, complete moves to the end.
        while self._records:
            key, record = next(iter(self._records.items()))
            if record.state is RecordState.IN_FLIGHT or not record.expired(now):
                break
            del self._records[key]

    def claim(self, key: str) -> tuple[IdempotencyRecord, bool]:
        with self._lock:
            now = self._clock()
            self._purge(now)
            record = self._records.get(key)
            if record is not None:
                if record.state is RecordState.IN_FLIGHT or not record.expired(now):
                    return record, False
                del self._records[key]
            record = IdempotencyRecord(
                key=key,
                state=RecordState.IN_FLIGHT,
                expires_at=now + self._ttl,
            )
            self._records[key] = record
            return record, True

    def complete(self, key: str, state: RecordState) -> None:
        with self._lock:
            record = self._records.get(key)
            if record is not None:
                record.state = state
                record.expires_at = self._clock() + self._ttl
                self._records.move_to_end(key)

    def release(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    def get(self, key: str) -> IdempotencyRecord | None:
        with self._lock:
            record = self._records.get(key)
            if record is not None and record.state is not RecordState.IN_FLIGHT and record.expired(self._clock()):
                del self._records[key]
                return None
            return record

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
