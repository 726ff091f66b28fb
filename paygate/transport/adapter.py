import json
import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime, timezone

import requests
from requests.adapters import HTTPAdapter

from paygate import __version__
from paygate.cancellation import CancellationToken
from paygate.config import GatewayConfig
from paygate.models.attempt import AttemptRecord
from paygate.models.outcome import Cancelled, HttpError, NetworkFailure, Outcome, Success, Timeout
from paygate.transport.log import AttemptLog

logger = logging.getLogger(__name__)

# requests raises these before anything reaches the network
_MALFORMED_REQUEST_ERRORS = (
    requests.exceptions.InvalidURL,
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.InvalidHeader,
)

_CANCEL_POLL_SECONDS = 0.05


@dataclass(frozen=True)
class ApiRequest:
    method: str
    path: str
    body: dict | None = None
    idempotency_key: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


class TransportAdapter:
    """Sends one authenticated request per call and reports the raw outcome.

    No retries happen here, and response bodies are passed through untouched.
    Calls made with a cancellation token run on a small worker pool so the
    caller can walk away from a request that is still on the wire.
    """

    def __init__(
        self,
        config: GatewayConfig,
        session: requests.Session | None = None,
        attempt_log: AttemptLog | None = None,
        max_workers: int = 8,
    ):
        self.config = config
        self.attempt_log = attempt_log or AttemptLog()
        self._owns_session = session is None
        self.session = session or self._build_session()
        self._max_workers = max_workers
        self._pool: ThreadPoolExecutor | None = None
        self._pool_lock = threading.Lock()

    @staticmethod
    def _build_session() -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _headers(self, request: ApiRequest) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Accept": "application/json",
            "User-Agent": f"paygate-python/{__version__}",
        }
        if request.body is not None:
            headers["Content-Type"] = "application/json"
        if request.idempotency_key:
            headers["Idempotency-Key"] = request.idempotency_key
        headers.update(request.headers)
        return headers

    def _workers(self) -> ThreadPoolExecutor:
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="paygate-transport",
                )
            return self._pool

    def send(self, request: ApiRequest, cancel: CancellationToken | None = None) -> Outcome:
        """Send ``request`` once.

        With a ``cancel`` token the call returns ``Cancelled`` as soon as the
        token fires, even mid-request. The abandoned request finishes in the
        background (bounded by the timeout); its attempt is still logged but
        its response is discarded.
        """
        if cancel is None:
            return self._attempt(request)
        if cancel.cancelled:
            return Cancelled(cancel.reason)

        future = self._workers().submit(self._attempt, request)
        while True:
            try:
                outcome = future.result(timeout=_CANCEL_POLL_SECONDS)
                break
            except FutureTimeout:
                if cancel.cancelled:
                    future.cancel()
                    logger.info(
                        "%s %s abandoned in flight: %s",
                        request.method, request.path, cancel.reason,
                    )
                    return Cancelled(cancel.reason)

        if cancel.cancelled:
            return Cancelled(cancel.reason)
        return outcome

    def _attempt(self, request: ApiRequest) -> Outcome:
        url = f"{self.config.api_base_url}/{request.path.lstrip('/')}"
        data = None
        if request.body is not None:
            data = json.dumps(request.body, separators=(",", ":")).encode("utf-8")

        start = time.monotonic()
        status_code = None
        error = None
        outcome: Outcome

        try:
            resp = self.session.request(
                request.method,
                url,
                data=data,
                headers=self._headers(request),
                timeout=self.config.timeout_seconds,
                allow_redirects=False,
            )
            status_code = resp.status_code
            headers = dict(resp.headers)
            if 200 <= resp.status_code < 300:
                outcome = Success(resp.status_code, resp.content, headers)
            else:
                outcome = HttpError(resp.status_code, resp.content, headers)
        except requests.exceptions.Timeout:
            error = "timeout"
            outcome = Timeout((time.monotonic() - start) * 1000)
        except _MALFORMED_REQUEST_ERRORS as e:
            error = "malformed_request"
            outcome = NetworkFailure(str(e), retryable=False)
        except requests.exceptions.ConnectionError as e:
            error = "connection_error"
            outcome = NetworkFailure(str(e))
        except requests.exceptions.RequestException as e:
            error = str(e)
            outcome = NetworkFailure(str(e))

        elapsed_ms = (time.monotonic() - start) * 1000

        self.attempt_log.log(AttemptRecord(
            attempt_id=f"att_{uuid.uuid4().hex[:16]}",
            idempotency_key=request.idempotency_key,
            method=request.method,
            path=request.path,
            status_code=status_code,
            timestamp=datetime.now(timezone.utc),
            response_time_ms=elapsed_ms,
            error=error,
        ))
        logger.debug(
            "%s %s -> %s in %.1f ms",
            request.method, request.path, status_code or error, elapsed_ms,
        )
        return outcome

    def close(self) -> None:
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=False, cancel_futures=True)
        if self._owns_session:
            self.session.close()
