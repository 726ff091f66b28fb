import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from paygate.errors import PaymentNotFound, VerificationError
from paygate.models.webhook import WebhookEvent
from paygate.observability.metrics import MetricsCollector
from paygate.state.machine import PaymentStateMachine, TransitionResult
from paygate.utils.locks import KeyedLocks
from paygate.webhooks.dedup import EventDeduplicator
from paygate.webhooks.verifier import WebhookVerifier

logger = logging.getLogger(__name__)


class WebhookOutcome(Enum):
    APPLIED = "applied"
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    UNKNOWN_PAYMENT = "unknown_payment"
    FAILED = "failed"


_OK_OUTCOMES = frozenset({WebhookOutcome.APPLIED, WebhookOutcome.IGNORED, WebhookOutcome.DUPLICATE})


@dataclass(frozen=True)
class WebhookResult:
    """What happened to a verified webhook.

    Acknowledge receipt to the sender regardless; ``ok`` tells whether
    processing succeeded so internal failures can be alerted on separately.
    """

    outcome: WebhookOutcome
    event: WebhookEvent
    transition: TransitionResult | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.outcome in _OK_OUTCOMES


FailureHook = Callable[[bytes, str, WebhookResult], None]


class WebhookProcessor:
    """Verifies inbound webhooks and applies them to the state machine once per event id."""

    def __init__(
        self,
        verifier: WebhookVerifier,
        state_machine: PaymentStateMachine,
        deduplicator: EventDeduplicator | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self.verifier = verifier
        self.state_machine = state_machine
        self.deduplicator = deduplicator or EventDeduplicator()
        self.metrics = metrics
        self._locks = KeyedLocks()
        self._failure_hooks: list[FailureHook] = []

    def on_failure(self, hook: FailureHook) -> None:
        """Register a callback invoked with (raw_payload, signature, result) for failed events."""
        self._failure_hooks.append(hook)

    def handle(self, raw_payload: bytes | str, signature_header: str | None) -> WebhookResult:
        """Verify, deduplicate and apply one webhook delivery.

        Raises:
            VerificationError: The signature is invalid or the body malformed.
                Nothing is applied.
        """
        if isinstance(raw_payload, str):
            raw_payload = raw_payload.encode("utf-8")

        try:
            event = self.verifier.verify_and_parse(raw_payload, signature_header)
        except VerificationError as exc:
            self._record(False, exc.reason)
            raise

        with self._locks.hold(event.event_id):
            if self.deduplicator.seen(event.event_id):
                logger.info("Duplicate webhook %s for payment %s", event.event_id, event.payment_id)
                result = WebhookResult(WebhookOutcome.DUPLICATE, event)
            else:
                result = self._apply(event)
                if result.ok:
                    self.deduplicator.mark(event.event_id)

        self._record(result.ok, result.outcome.value)
        if not result.ok:
            for hook in self._failure_hooks:
                hook(raw_payload, signature_header or "", result)
        return result

    def _apply(self, event: WebhookEvent) -> WebhookResult:
        try:
            transition = self.state_machine.apply(
                event.payment_id,
                event.status,
                event_id=event.event_id,
                refunded_amount=event.refunded_amount,
            )
        except PaymentNotFound as exc:
            logger.warning("Webhook %s references untracked payment %s", event.event_id, event.payment_id)
            return WebhookResult(WebhookOutcome.UNKNOWN_PAYMENT, event, error=exc)
        except Exception as exc:
            # Usually the caller's PaymentStore; reported, not retried here.
            logger.exception("Failed to apply webhook %s to payment %s", event.event_id, event.payment_id)
            return WebhookResult(WebhookOutcome.FAILED, event, error=exc)

        outcome = WebhookOutcome.APPLIED if transition.applied else WebhookOutcome.IGNORED
        return WebhookResult(outcome, event, transition=transition)

    def _record(self, ok: bool, reason: str) -> None:
        if self.metrics is None:
            return
        if ok:
            self.metrics.record_success("webhook")
        else:
            self.metrics.record_failure("webhook", reason=reason)
