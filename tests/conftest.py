import pytest

from paygate.client import PaymentGatewayClient
from paygate.config import GatewayConfig
from paygate.observability.alerting import AlertManager
from paygate.observability.metrics import MetricsCollector
from paygate.retry.policy import RetryPolicy
from paygate.sandbox.server import SandboxProcessorServer
from paygate.state.machine import PaymentStateMachine
from paygate.transport.log import AttemptLog
from paygate.utils.factories import PaymentFactory, PaymentRequestFactory, WebhookFactory
from paygate.webhooks.dedup import EventDeduplicator
from paygate.webhooks.processor import WebhookProcessor
from paygate.webhooks.signer import WebhookSigner
from paygate.webhooks.verifier import WebhookVerifier


API_KEY = "sk_test_0123456789"
WEBHOOK_SECRET = "test-secret-key-for-hmac"


@pytest.fixture
def api_key():
    return API_KEY


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


@pytest.fixture
def signer():
    return WebhookSigner(WEBHOOK_SECRET)


@pytest.fixture
def retry_policy():
    return RetryPolicy()


@pytest.fixture
def attempt_log():
    return AttemptLog()


@pytest.fixture
def metrics():
    return MetricsCollector(window_seconds=300)


@pytest.fixture
def alert_manager(metrics):
    return AlertManager(metrics=metrics, category="webhook", threshold=0.10)


@pytest.fixture
def state_machine():
    return PaymentStateMachine()


@pytest.fixture
def webhook_processor(state_machine, metrics):
    return WebhookProcessor(
        WebhookVerifier(WEBHOOK_SECRET),
        state_machine,
        EventDeduplicator(max_entries=1000),
        metrics=metrics,
    )


@pytest.fixture
def sandbox():
    server = SandboxProcessorServer(api_key=API_KEY, webhook_secret=WEBHOOK_SECRET)
    server.start()
    yield server
    server.stop()


@pytest.fixture
def config(sandbox):
    """Client config pointed at the sandbox, with zero backoff so retries are instant."""
    return GatewayConfig(
        api_key=API_KEY,
        base_url=sandbox.url,
        shared_secret=WEBHOOK_SECRET,
        timeout_ms=2000,
        retry_base_delay_ms=0,
        retry_max_delay_ms=0,
        max_retry_after_ms=0,
    )


@pytest.fixture
def client(config):
    gateway = PaymentGatewayClient(config)
    yield gateway
    gateway.close()


@pytest.fixture
def payment_request_factory():
    return PaymentRequestFactory


@pytest.fixture
def payment_factory():
    return PaymentFactory


@pytest.fixture
def webhook_factory():
    return WebhookFactory
