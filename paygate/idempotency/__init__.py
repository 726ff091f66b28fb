from .keys import derive_idempotency_key
from .manager import IdempotencyManager
from .store import IdempotencyRecord, IdempotencyStore, InMemoryIdempotencyStore, RecordState

__all__ = [
    "derive_idempotency_key",
    "IdempotencyManager",
    "IdempotencyRecord",
    "IdempotencyStore",
    "InMemoryIdempotencyStore",
    "RecordState",
]
