from .dedup import EventDeduplicator
from .parser import parse_event
from .processor import WebhookOutcome, WebhookProcessor, WebhookResult
from .signer import SIGNATURE_HEADER, WebhookSigner
from .verifier import WebhookVerifier

__all__ = [
    "EventDeduplicator",
    "parse_event",
    "WebhookOutcome",
    "WebhookProcessor",
    "WebhookResult",
    "SIGNATURE_HEADER",
    "WebhookSigner",
    "WebhookVerifier",
]
