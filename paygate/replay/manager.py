import logging
import threading
from dataclasses import dataclass

from paygate.webhooks.processor import WebhookProcessor, WebhookResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailedWebhook:
    event_id: str
    payment_id: str
    raw_payload: bytes
    signature: str
    result: WebhookResult


class WebhookReplayManager:
    """Keeps webhooks whose processing failed so an operator can replay them.

    Replays go through the full processor again, signature check included.
    """

    def __init__(self, processor: WebhookProcessor, max_entries: int = 10_000):
        self.processor = processor
        self.max_entries = max_entries
        self._failed: dict[str, FailedWebhook] = {}
        self._lock = threading.Lock()
        processor.on_failure(self.register_failure)

    def register_failure(self, raw_payload: bytes, signature: str, result: WebhookResult) -> None:
        """Store a failed delivery for potential replay."""
        entry = FailedWebhook(
            event_id=result.event.event_id,
            payment_id=result.event.payment_id,
            raw_payload=raw_payload,
            signature=signature,
            result=result,
        )
        with self._lock:
            self._failed.pop(entry.event_id, None)
            self._failed[entry.event_id] = entry
            while len(self._failed) > self.max_entries:
                dropped = next(iter(self._failed))
                del self._failed[dropped]
                logger.warning("Replay queue full, dropped failed webhook %s", dropped)

    def replay_event(self, event_id: str) -> WebhookResult:
        """Replay a specific failed event by id.

        The entry is removed once it processes successfully; if it fails
        again the processor re-registers it.
        """
        with self._lock:
            entry = self._failed.pop(event_id, None)
        if entry is None:
            raise KeyError(f"Event {event_id} not found for replay")

        logger.info("Replaying webhook %s for payment %s", event_id, entry.payment_id)
        return self.processor.handle(entry.raw_payload, entry.signature)

    def replay_failed(self) -> dict[str, WebhookResult]:
        """Replay every stored failure. Returns event_id -> result."""
        with self._lock:
            event_ids = list(self._failed)
        return {event_id: self.replay_event(event_id) for event_id in event_ids}

    def get_failed(self) -> dict[str, FailedWebhook]:
        with self._lock:
            return dict(self._failed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._failed)
