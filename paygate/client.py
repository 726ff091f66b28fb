"""
High-level client for the payment processor.

    config = GatewayConfig(api_key="sk_test_...", shared_secret="whsec_...")
    with PaymentGatewayClient(config) as client:
        payment = client.create_payment(PaymentRequest(
            amount=2000, currency="PLN", description="Order #42",
            redirect_url="https://shop.example/return",
        ))
        client.check_status(payment.payment_id)
"""

import json
import logging
import uuid

import requests

from paygate.cancellation import CancellationToken
from paygate.config import GatewayConfig
from paygate.errors import GatewayError, ResponseFormatError
from paygate.idempotency.keys import derive_idempotency_key
from paygate.idempotency.manager import IdempotencyManager
from paygate.idempotency.store import IdempotencyStore, InMemoryIdempotencyStore
from paygate.models.outcome import Success
from paygate.models.payment import Payment, PaymentRequest, PaymentStatus
from paygate.models.refund import RefundRequest, RefundResult, RefundStatus
from paygate.observability.metrics import MetricsCollector
from paygate.replay.manager import WebhookReplayManager
from paygate.retry.executor import RetryingExecutor
from paygate.retry.policy import RetryPolicy
from paygate.state.machine import PaymentStateMachine
from paygate.state.store import PaymentStore
from paygate.transport.adapter import ApiRequest, TransportAdapter
from paygate.transport.log import AttemptLog
from paygate.webhooks.dedup import EventDeduplicator
from paygate.webhooks.processor import WebhookProcessor, WebhookResult
from paygate.webhooks.verifier import WebhookVerifier

logger = logging.getLogger(__name__)

__all__ = ["PaymentGatewayClient"]


def _decode(success: Success, what: str) -> dict:
    try:
        data = json.loads(success.body)
    except ValueError as exc:
        raise ResponseFormatError(
            f"Could not decode {what} response: {exc}", http_status=success.http_status
        ) from exc
    if not isinstance(data, dict):
        raise ResponseFormatError(f"{what} response is not a JSON object", http_status=success.http_status)
    return data


def _status(data: dict, what: str) -> PaymentStatus:
    try:
        return PaymentStatus(data.get("status"))
    except ValueError as exc:
        raise ResponseFormatError(f"{what} response has unknown status {data.get('status')!r}") from exc


class PaymentGatewayClient:
    def __init__(
        self,
        config: GatewayConfig,
        *,
        session: requests.Session | None = None,
        payment_store: PaymentStore | None = None,
        idempotency_store: IdempotencyStore | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self.config = config
        self.metrics = metrics or MetricsCollector()
        self.attempt_log = AttemptLog()
        self.transport = TransportAdapter(config, session=session, attempt_log=self.attempt_log)
        self.retry_policy = RetryPolicy.from_config(config)
        self.executor = RetryingExecutor(self.transport, self.retry_policy, metrics=self.metrics)
        self.idempotency = IdempotencyManager(
            idempotency_store or InMemoryIdempotencyStore(ttl=config.idempotency_ttl_seconds)
        )
        self.state_machine = PaymentStateMachine(payment_store)
        self.webhooks = WebhookProcessor(
            WebhookVerifier(config.shared_secret),
            self.state_machine,
            EventDeduplicator(
                max_entries=config.webhook_dedup_max_entries,
                ttl=config.webhook_dedup_ttl_seconds,
            ),
            metrics=self.metrics,
        )
        self.replay = WebhookReplayManager(self.webhooks)

    def create_payment(
        self,
        request: PaymentRequest,
        idempotency_token: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> Payment:
        """Create a payment at the processor, at most once per idempotency key.

        Without ``idempotency_token`` the key is derived from the request
        fields, so resubmitting the same fields returns the same payment.
        """
        key = derive_idempotency_key(request, idempotency_token)

        def dispatch() -> Payment:
            logger.info("Creating payment of %d %s (key %s)", request.amount, request.currency, key)
            success = self.executor.execute(
                ApiRequest("POST", "payments", body=request.to_wire(), idempotency_key=key),
                cancel,
            )
            data = _decode(success, "payment creation")
            payment_id = data.get("paymentId")
            if not isinstance(payment_id, str) or not payment_id:
                raise ResponseFormatError("payment creation response has no paymentId")
            payment = Payment(
                payment_id=payment_id,
                amount=request.amount,
                currency=request.currency,
                status=_status(data, "payment creation") if data.get("status") else PaymentStatus.CREATED,
                payment_url=data.get("paymentUrl"),
                description=request.description,
                metadata=dict(request.metadata),
            )
            logger.info("Created payment %s (key %s)", payment_id, key)
            return self.state_machine.track(payment)

        return self.idempotency.submit(key, dispatch, cancel)

    def get_payment(self, payment_id: str) -> Payment:
        return self.state_machine.get(payment_id)

    def track_payment(self, payment: Payment) -> Payment:
        """Track a payment created earlier (e.g. loaded from the caller's database)."""
        return self.state_machine.track(payment)

    def check_status(self, payment_id: str, cancel: CancellationToken | None = None) -> Payment:
        """Poll the processor and apply the returned status as an event."""
        success = self.executor.execute(ApiRequest("GET", f"payments/{payment_id}"), cancel)
        data = _decode(success, "status")
        status = _status(data, "status")
        refunded = data.get("refundedAmount")
        self.state_machine.apply(
            payment_id,
            status,
            refunded_amount=refunded if isinstance(refunded, int) and not isinstance(refunded, bool) else None,
        )
        return self.state_machine.get(payment_id)

    def refund(
        self,
        payment_id: str,
        amount: int,
        idempotency_token: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> RefundResult:
        """Refund part or all of a paid payment.

        Raises:
            InvalidRefundAmount: amount is not positive or exceeds the balance.
            StateConflict: the payment is not paid.
            GatewayError: the refund could not be delivered; the reservation
                is released and the payment keeps its previous status.
        """
        refund = RefundRequest(payment_id=payment_id, amount=amount)
        self.state_machine.reserve_refund(payment_id, amount)
        key = idempotency_token or f"refund_{uuid.uuid4().hex}"

        try:
            success = self.executor.execute(
                ApiRequest("POST", f"payments/{payment_id}/refunds", body=refund.to_wire(), idempotency_key=key),
                cancel,
            )
            data = _decode(success, "refund")
            try:
                status = RefundStatus(data.get("status"))
            except ValueError as exc:
                raise ResponseFormatError(f"refund response has unknown status {data.get('status')!r}") from exc
        except GatewayError:
            self.state_machine.release_refund(payment_id, amount)
            raise

        error_message = data.get("error_message") or data.get("errorMessage")
        if status is RefundStatus.SUCCESS:
            self.state_machine.settle_refund(payment_id, amount)
        elif status is RefundStatus.FAILED:
            self.state_machine.release_refund(payment_id, amount)
            logger.warning("Refund of %d on payment %s failed: %s", amount, payment_id, error_message)
        # pending keeps the reservation until a webhook or poll settles it
        return RefundResult(status=status, amount=amount, error_message=error_message)

    def handle_webhook(self, raw_payload: bytes | str, signature_header: str | None) -> WebhookResult:
        return self.webhooks.handle(raw_payload, signature_header)

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> "PaymentGatewayClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
