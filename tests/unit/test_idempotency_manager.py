import threading
import time

import pytest

from paygate.cancellation import CancellationToken
from paygate.errors import ClientError, OperationCancelled, RetriesExhausted, ServerError
from paygate.idempotency.keys import derive_idempotency_key
from paygate.idempotency.manager import IdempotencyManager
from paygate.idempotency.store import InMemoryIdempotencyStore, RecordState


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TestDeriveKey:
    """Tests for derive_idempotency_key()."""

    @pytest.mark.unit
    def test_identical_requests_share_a_key(self, payment_request_factory):
        a = payment_request_factory.create(description="Order 1")
        b = payment_request_factory.create(description="Order 1")
        assert derive_idempotency_key(a) == derive_idempotency_key(b)
        assert derive_idempotency_key(a).startswith("pay_")

    @pytest.mark.unit
    def test_different_requests_differ(self, payment_request_factory):
        a = payment_request_factory.create(description="Order 1")
        b = payment_request_factory.create(description="Order 1", amount=2001)
        assert derive_idempotency_key(a) != derive_idempotency_key(b)

    @pytest.mark.unit
    def test_metadata_order_does_not_matter(self, payment_request_factory):
        a = payment_request_factory.create(description="x", metadata={"a": "1", "b": "2"})
        b = payment_request_factory.create(description="x", metadata={"b": "2", "a": "1"})
        assert derive_idempotency_key(a) == derive_idempotency_key(b)

    @pytest.mark.unit
    def test_caller_token_wins(self, payment_request_factory):
        request = payment_request_factory.create()
        assert derive_idempotency_key(request, "  order-42 ") == "order-42"

    @pytest.mark.unit
    @pytest.mark.parametrize("token", ["", "   ", "k" * 256])
    def test_invalid_token_rejected(self, payment_request_factory, token):
        with pytest.raises(ClientError):
            derive_idempotency_key(payment_request_factory.create(), token)


class TestStore:
    """Tests for InMemoryIdempotencyStore."""

    @pytest.mark.unit
    def test_first_claim_leads_second_follows(self):
        store = InMemoryIdempotencyStore()
        record, leader = store.claim("k")
        again, second_leader = store.claim("k")
        assert leader and not second_leader
        assert again is record
        assert record.state is RecordState.IN_FLIGHT

    @pytest.mark.unit
    def test_completed_record_expires(self):
        clock = FakeClock()
        store = InMemoryIdempotencyStore(ttl=60, clock=clock)
        store.claim("k")
        store.complete("k", RecordState.COMPLETED)
        clock.advance(59)
        assert store.get("k") is not None
        clock.advance(2)
        assert store.get("k") is None
        _, leader = store.claim("k")
        assert leader

    @pytest.mark.unit
    def test_in_flight_record_never_expires(self):
        clock = FakeClock()
        store = InMemoryIdempotencyStore(ttl=60, clock=clock)
        store.claim("k")
        clock.advance(3600)
        _, leader = store.claim("k")
        assert not leader

    @pytest.mark.unit
    def test_expired_records_are_purged(self):
        clock = FakeClock()
        store = InMemoryIdempotencyStore(ttl=60, clock=clock)
        for key in ("a", "b", "c"):
            store.claim(key)
            store.complete(key, RecordState.COMPLETED)
        clock.advance(61)
        store.claim("d")
        assert len(store) == 1

    @pytest.mark.unit
    def test_release_forgets_key(self):
        store = InMemoryIdempotencyStore()
        store.claim("k")
        store.release("k")
        assert store.get("k") is None


class TestManager:
    """Tests for IdempotencyManager.submit()."""

    @pytest.mark.unit
    def test_second_submit_returns_cached_payment(self, payment_factory):
        manager = IdempotencyManager()
        calls = []

        def dispatch():
            calls.append(1)
            return payment_factory.create()

        first = manager.submit("k", dispatch)
        second = manager.submit("k", dispatch)
        assert first is second
        assert len(calls) == 1

    @pytest.mark.unit
    def test_concurrent_submits_dispatch_once(self, payment_factory):
        manager = IdempotencyManager()
        calls = []
        gate = threading.Event()
        results = []

        def dispatch():
            calls.append(1)
            gate.wait(2)
            return payment_factory.create()

        def submit():
            results.append(manager.submit("k", dispatch))

        threads = [threading.Thread(target=submit) for _ in range(10)]
        for t in threads:
            t.start()
        time.sleep(0.1)
        gate.set()
        for t in threads:
            t.join()

        assert len(calls) == 1
        assert len(results) == 10
        assert len({p.payment_id for p in results}) == 1

    @pytest.mark.unit
    def test_client_error_is_cached(self):
        manager = IdempotencyManager()
        calls = []

        def dispatch():
            calls.append(1)
            raise ClientError("amount too large", http_status=422)

        with pytest.raises(ClientError):
            manager.submit("k", dispatch)
        with pytest.raises(ClientError):
            manager.submit("k", dispatch)
        assert len(calls) == 1

    @pytest.mark.unit
    def test_exhausted_retries_release_the_key(self, payment_factory):
        manager = IdempotencyManager()
        outcomes = [RetriesExhausted(ServerError("down", http_status=503), attempts=4)]

        def dispatch():
            if outcomes:
                raise outcomes.pop()
            return payment_factory.create()

        with pytest.raises(RetriesExhausted):
            manager.submit("k", dispatch)
        payment = manager.submit("k", dispatch)
        assert payment.payment_id.startswith("tr_")

    @pytest.mark.unit
    def test_follower_sees_leader_failure(self):
        manager = IdempotencyManager()
        gate = threading.Event()
        errors = []

        def dispatch():
            gate.wait(2)
            raise RetriesExhausted(ServerError("down", http_status=503), attempts=4)

        def submit():
            try:
                manager.submit("k", dispatch)
            except RetriesExhausted as exc:
                errors.append(exc)

        threads = [threading.Thread(target=submit) for _ in range(3)]
        for t in threads:
            t.start()
        time.sleep(0.1)
        gate.set()
        for t in threads:
            t.join()
        assert len(errors) == 3

    @pytest.mark.unit
    def test_follower_takes_over_after_leader_cancelled(self, payment_factory):
        manager = IdempotencyManager()
        leader_started = threading.Event()
        release_leader = threading.Event()
        dispatched = []

        def cancelled_dispatch():
            dispatched.append("leader")
            leader_started.set()
            release_leader.wait(2)
            raise OperationCancelled()

        def follower_dispatch():
            dispatched.append("follower")
            return payment_factory.create()

        leader_error = []

        def leader():
            try:
                manager.submit("k", cancelled_dispatch)
            except OperationCancelled as exc:
                leader_error.append(exc)

        t = threading.Thread(target=leader)
        t.start()
        leader_started.wait(2)

        results = []
        follower = threading.Thread(target=lambda: results.append(manager.submit("k", follower_dispatch)))
        follower.start()
        time.sleep(0.1)
        release_leader.set()
        t.join()
        follower.join()

        assert len(leader_error) == 1
        assert dispatched == ["leader", "follower"]
        assert len(results) == 1

    @pytest.mark.unit
    def test_waiting_follower_can_be_cancelled(self, payment_factory):
        manager = IdempotencyManager()
        gate = threading.Event()
        started = threading.Event()

        def dispatch():
            started.set()
            gate.wait(2)
            return payment_factory.create()

        leader = threading.Thread(target=lambda: manager.submit("k", dispatch))
        leader.start()
        started.wait(2)

        token = CancellationToken()
        token.cancel("caller gave up")
        with pytest.raises(OperationCancelled):
            manager.submit("k", dispatch, cancel=token)

        gate.set()
        leader.join()
