"""E2E: metrics and alerts fed by real client traffic."""

import pytest

from paygate.client import PaymentGatewayClient
from paygate.errors import RetriesExhausted, VerificationError
from paygate.observability.alerting import AlertManager
from paygate.observability.metrics import MetricsCollector


pytestmark = pytest.mark.e2e


@pytest.fixture
def shared_metrics():
    return MetricsCollector(window_seconds=300)


@pytest.fixture
def observed_client(config, shared_metrics):
    gateway = PaymentGatewayClient(config, metrics=shared_metrics)
    yield gateway
    gateway.close()


class TestObservability:
    """Dispatch and webhook outcomes are counted per category."""

    def test_dispatch_metrics(self, observed_client, sandbox, shared_metrics, payment_request_factory):
        observed_client.create_payment(payment_request_factory.create())
        sandbox.fail_next(503, 503, 503, 503)
        with pytest.raises(RetriesExhausted):
            observed_client.create_payment(payment_request_factory.create())

        assert shared_metrics.success_count_in_window("dispatch") == 1
        assert shared_metrics.failure_reasons("dispatch") == {"exhausted": 1}

    def test_webhook_failure_alert(self, observed_client, sandbox, shared_metrics, payment_request_factory):
        alerts = []
        manager = AlertManager(shared_metrics, category="webhook", threshold=0.25, callback=alerts.append)
        payment = observed_client.create_payment(payment_request_factory.create())

        observed_client.handle_webhook(*sandbox.build_webhook(payment.payment_id, "paid"))
        assert manager.check() is None

        raw, _ = sandbox.build_webhook(payment.payment_id, "paid")
        with pytest.raises(VerificationError):
            observed_client.handle_webhook(raw, "sha256=forged")
        observed_client.handle_webhook(*sandbox.build_webhook("tr_unknown", "paid"))

        alert = manager.check()
        assert alert is not None
        assert alert["failed"] == 2
        assert alert["total"] == 3
        assert alerts == [alert]
        assert shared_metrics.failure_reasons("webhook") == {"InvalidSignature": 1, "unknown_payment": 1}
