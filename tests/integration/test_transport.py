"""Integration tests for the transport adapter against the sandbox processor."""

import json
import threading
import time
from datetime import datetime, timezone

import pytest

from paygate.cancellation import CancellationToken
from paygate.config import GatewayConfig
from paygate.models.attempt import AttemptRecord
from paygate.models.outcome import Cancelled, HttpError, NetworkFailure, Success, Timeout
from paygate.sandbox.server import _ProcessorHandler
from paygate.transport.adapter import ApiRequest, TransportAdapter
from paygate.transport.log import AttemptLog


pytestmark = pytest.mark.integration


def _create_body(amount=2000):
    return {
        "amount": amount,
        "currency": "PLN",
        "description": "Order 1",
        "redirectUrl": "https://shop.example.com/return",
    }


@pytest.fixture
def transport(config, attempt_log):
    adapter = TransportAdapter(config, attempt_log=attempt_log)
    yield adapter
    adapter.close()


class TestSend:
    """Single-attempt outcomes."""

    def test_success_returns_raw_body(self, transport, sandbox):
        outcome = transport.send(ApiRequest("POST", "payments", body=_create_body(), idempotency_key="k1"))
        assert isinstance(outcome, Success)
        assert outcome.http_status == 201
        assert json.loads(outcome.body)["paymentId"].startswith("tr_")

    def test_sends_auth_and_idempotency_headers(self, transport, sandbox, api_key):
        transport.send(ApiRequest("POST", "payments", body=_create_body(), idempotency_key="k-headers"))
        request = sandbox.get_requests("POST", "/v1/payments")[0]
        headers = {k.lower(): v for k, v in request["headers"].items()}
        assert headers["authorization"] == f"Bearer {api_key}"
        assert headers["idempotency-key"] == "k-headers"
        assert headers["content-type"] == "application/json"
        assert headers["user-agent"].startswith("paygate-python/")

    def test_client_error_is_http_error(self, transport):
        outcome = transport.send(ApiRequest("POST", "payments", body=_create_body(amount=-1)))
        assert isinstance(outcome, HttpError)
        assert outcome.status == 422
        assert b"invalid amount" in outcome.body

    def test_bad_api_key_is_401(self, sandbox, attempt_log):
        config = GatewayConfig(api_key="sk_wrong", base_url=sandbox.url)
        adapter = TransportAdapter(config, attempt_log=attempt_log)
        try:
            outcome = adapter.send(ApiRequest("GET", "payments/tr_x"))
        finally:
            adapter.close()
        assert isinstance(outcome, HttpError)
        assert outcome.status == 401

    def test_retry_after_header_is_exposed(self, transport, sandbox):
        sandbox.fail_next(429, retry_after=7)
        outcome = transport.send(ApiRequest("GET", "payments/tr_x"))
        assert isinstance(outcome, HttpError)
        assert outcome.header("retry-after") == "7"

    def test_timeout(self, sandbox, api_key, attempt_log):
        config = GatewayConfig(api_key=api_key, base_url=sandbox.url, timeout_ms=300)
        adapter = TransportAdapter(config, attempt_log=attempt_log)
        sandbox.set_response_delay(2)
        try:
            outcome = adapter.send(ApiRequest("GET", "payments/tr_x"))
        finally:
            adapter.close()
        assert isinstance(outcome, Timeout)
        assert outcome.elapsed_ms >= 250
        assert attempt_log.get_attempts()[0].error == "timeout"

    def test_connection_refused(self, api_key, attempt_log):
        # Use a port that is almost certainly not listening
        config = GatewayConfig(api_key=api_key, base_url="http://127.0.0.1:19999/v1")
        adapter = TransportAdapter(config, attempt_log=attempt_log)
        try:
            outcome = adapter.send(ApiRequest("GET", "payments/tr_x"))
        finally:
            adapter.close()
        assert isinstance(outcome, NetworkFailure)
        assert outcome.retryable
        assert attempt_log.get_attempts()[0].error == "connection_error"

    def test_cancelled_token_skips_network(self, transport, sandbox):
        token = CancellationToken()
        token.cancel("shutdown")
        outcome = transport.send(ApiRequest("GET", "payments/tr_x"), token)
        assert outcome == Cancelled("shutdown")
        assert sandbox.get_requests() == []

    def test_cancel_while_request_in_flight(self, transport, sandbox):
        sandbox.set_response_delay(1.5)
        token = CancellationToken()
        threading.Timer(0.1, token.cancel, args=("user navigated away",)).start()

        start = time.monotonic()
        outcome = transport.send(ApiRequest("GET", "payments/tr_x"), token)
        elapsed = time.monotonic() - start

        assert outcome == Cancelled("user navigated away")
        assert elapsed < 1.0
        # The request did reach the processor; only its response is discarded.
        assert len(sandbox.get_requests("GET", "/v1/payments/tr_x")) == 1

    def test_token_that_never_fires_returns_response(self, transport, sandbox):
        outcome = transport.send(ApiRequest("POST", "payments", body=_create_body()), CancellationToken())
        assert isinstance(outcome, Success)
        assert outcome.http_status == 201


class TestSandboxLocking:
    """The sandbox writes responses only after releasing its state lock."""

    @pytest.fixture
    def lock_held_on_write(self, sandbox, monkeypatch):
        held = []
        original = _ProcessorHandler._send_json

        def _send_json(handler, code, body, headers=None):
            held.append((code, sandbox._state["lock"].locked()))
            original(handler, code, body, headers)

        monkeypatch.setattr(_ProcessorHandler, "_send_json", _send_json)
        return held

    def test_missing_payment_404_is_written_unlocked(self, transport, lock_held_on_write):
        outcome = transport.send(ApiRequest("GET", "payments/tr_missing"))
        assert isinstance(outcome, HttpError)
        assert outcome.status == 404
        assert lock_held_on_write == [(404, False)]

    def test_refund_responses_are_written_unlocked(self, transport, sandbox, lock_held_on_write):
        created = json.loads(transport.send(ApiRequest("POST", "payments", body=_create_body())).body)
        sandbox.set_payment_status(created["paymentId"], "paid")

        refund = ApiRequest("POST", f"payments/{created['paymentId']}/refunds", body={"amount": 500}, idempotency_key="r1")
        transport.send(refund)
        transport.send(refund)
        missing = transport.send(ApiRequest("POST", "payments/tr_missing/refunds", body={"amount": 500}))

        assert missing.status == 404
        assert lock_held_on_write == [(201, False), (200, False), (200, False), (404, False)]


class TestAttemptLogging:
    """Every attempt is recorded in the AttemptLog."""

    def test_attempts_are_recorded(self, transport, attempt_log):
        transport.send(ApiRequest("POST", "payments", body=_create_body(), idempotency_key="k-log"))
        transport.send(ApiRequest("GET", "payments/tr_missing"))
        records = attempt_log.get_attempts()
        assert [r.status_code for r in records] == [201, 404]
        assert records[0].idempotency_key == "k-log"
        assert records[0].response_time_ms >= 0
        assert attempt_log.get_attempts("k-log") == [records[0]]
        assert attempt_log.get_failed_attempts() == [records[1]]
        assert attempt_log.count("GET") == 1

    def test_log_is_bounded(self):
        log = AttemptLog(max_records=2)
        for record in _records(5):
            log.log(record)
        assert [r.attempt_id for r in log.get_attempts()] == ["att_3", "att_4"]


def _records(n):
    return [
        AttemptRecord(
            attempt_id=f"att_{i}",
            idempotency_key=None,
            method="GET",
            path="payments",
            status_code=200,
            timestamp=datetime.now(timezone.utc),
            response_time_ms=1.0,
        )
        for i in range(n)
    ]
