import json
import re
import threading
import time
import uuid
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Self

from paygate.webhooks.signer import SIGNATURE_HEADER, WebhookSigner

_PAYMENT_PATH = re.compile(r"^/v1/payments/(?P<payment_id>[^/]+)$")
_REFUND_PATH = re.compile(r"^/v1/payments/(?P<payment_id>[^/]+)/refunds$")


class _ProcessorHandler(BaseHTTPRequestHandler):
    """HTTP request handler emulating the processor's REST API."""

    def _send_json(self, code: int, body: dict, headers: dict | None = None) -> None:
        data = json.dumps(body).encode()
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(data)

    def _read_json(self) -> dict | None:
        content_length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(content_length) if content_length else b""
        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, ValueError):
            return None
        return payload if isinstance(payload, dict) else None

    def _preamble(self) -> bool:
        """Auth, logging, delay and scripted failures. Returns False if already answered."""
        state = self.server.state  # type: ignore[attr-defined]

        with state["lock"]:
            state["requests"].append({
                "method": self.command,
                "path": self.path,
                "headers": dict(self.headers),
            })
            scripted = state["scripted"].pop(0) if state["scripted"] else None

        if state["response_delay"] > 0:
            time.sleep(state["response_delay"])

        if self.headers.get("Authorization", "") != f"Bearer {state['api_key']}":
            self._send_json(401, {"error": "invalid api key"})
            return False

        if scripted is not None:
            code, retry_after = scripted
            headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
            self._send_json(code, {"error": f"scripted failure {code}"}, headers)
            return False
        return True

    def do_POST(self):
        if not self._preamble():
            return
        if self.path == "/v1/payments":
            self._create_payment()
            return
        match = _REFUND_PATH.match(self.path)
        if match:
            self._refund(match.group("payment_id"))
            return
        self._send_json(404, {"error": "not found"})

    def do_GET(self):
        if not self._preamble():
            return
        match = _PAYMENT_PATH.match(self.path)
        if not match:
            self._send_json(404, {"error": "not found"})
            return

        state = self.server.state  # type: ignore[attr-defined]
        body = None
        with state["lock"]:
            payment = state["payments"].get(match.group("payment_id"))
            if payment is not None:
                # The customer has opened the checkout page by the first poll.
                if payment["status"] == "created":
                    payment["status"] = "pending"
                body = dict(payment)
        # Write outside the lock so a slow reader cannot stall other handlers.
        if body is None:
            self._send_json(404, {"error": "payment not found"})
        else:
            self._send_json(200, body)

    def _create_payment(self):
        state = self.server.state  # type: ignore[attr-defined]
        payload = self._read_json()
        if payload is None:
            self._send_json(400, {"error": "invalid JSON"})
            return

        required_fields = ["amount", "currency", "description", "redirectUrl"]
        missing = [f for f in required_fields if f not in payload]
        if missing:
            self._send_json(422, {"message": f"missing fields: {missing}"})
            return
        if not isinstance(payload["amount"], int) or payload["amount"] <= 0:
            self._send_json(422, {"message": "invalid amount"})
            return

        key = self.headers.get("Idempotency-Key", "")
        with state["lock"]:
            if key and key in state["idempotency"]:
                payment_id = state["idempotency"][key]
            else:
                payment_id = f"tr_{uuid.uuid4().hex[:12]}"
                state["payments"][payment_id] = {
                    "paymentId": payment_id,
                    "status": "created",
                    "amount": payload["amount"],
                    "currency": payload["currency"],
                    "refundedAmount": 0,
                }
                state["created_count"] += 1
                if key:
                    state["idempotency"][key] = payment_id
            status = state["payments"][payment_id]["status"]

        self._send_json(201, {
            "paymentId": payment_id,
            "paymentUrl": f"{state['base_url']}/checkout/{payment_id}",
            "status": status,
        })

    def _refund(self, payment_id: str):
        state = self.server.state  # type: ignore[attr-defined]
        payload = self._read_json()
        if payload is None or not isinstance(payload.get("amount"), int):
            self._send_json(400, {"error": "invalid refund body"})
            return

        key = self.headers.get("Idempotency-Key", "")
        amount = payload["amount"]
        with state["lock"]:
            payment = state["payments"].get(payment_id)
            if key and key in state["refund_keys"]:
                code, body = 200, state["refund_keys"][key]
            elif payment is None:
                code, body = 404, {"error": "payment not found"}
            else:
                code, body = 200, self._book_refund(state, payment, amount)
                if key:
                    state["refund_keys"][key] = body
        self._send_json(code, body)

    @staticmethod
    def _book_refund(state: dict, payment: dict, amount: int) -> dict:
        remaining = payment["amount"] - payment["refundedAmount"]
        if payment["status"] not in ("paid", "partially_refunded"):
            return {"status": "failed", "error_message": f"payment is {payment['status']}"}
        if amount <= 0 or amount > remaining:
            return {"status": "failed", "error_message": "amount exceeds refundable balance"}
        if state["refund_status"] == "success":
            payment["refundedAmount"] += amount
            payment["status"] = "refunded" if payment["refundedAmount"] == payment["amount"] else "partially_refunded"
            return {"status": "success"}
        if state["refund_status"] == "pending":
            return {"status": "pending"}
        return {"status": "failed", "error_message": "refund declined"}

    def log_message(self, format, *args):
        """Suppress default request logging."""
        pass


class SandboxProcessorServer:
    """In-process HTTP server that stands in for the payment processor in tests."""

    def __init__(self, api_key: str, host: str = "127.0.0.1", port: int = 0, webhook_secret: str | None = None):
        self._host = host
        self._port = port
        self._signer = WebhookSigner(webhook_secret) if webhook_secret else None
        self._state = {
            "api_key": api_key,
            "base_url": "",
            "response_delay": 0,
            "scripted": [],
            "refund_status": "success",
            "payments": {},
            "idempotency": {},
            "refund_keys": {},
            "created_count": 0,
            "requests": [],
            "lock": threading.Lock(),
        }
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def fail_next(self, *codes: int, retry_after: float | None = None) -> Self:
        """Answer the next requests with these status codes, in order."""
        with self._state["lock"]:
            self._state["scripted"].extend((code, retry_after) for code in codes)
        return self

    def set_response_delay(self, seconds: float) -> Self:
        self._state["response_delay"] = seconds
        return self

    def set_refund_status(self, status: str) -> Self:
        self._state["refund_status"] = status
        return self

    def set_payment_status(self, payment_id: str, status: str) -> Self:
        """Simulate the processor moving a payment (customer paid, link expired, ...)."""
        with self._state["lock"]:
            self._state["payments"][payment_id]["status"] = status
        return self

    def build_webhook(
        self,
        payment_id: str,
        status: str,
        event_id: str | None = None,
        **extra,
    ) -> tuple[bytes, str]:
        """Return a signed webhook body and signature header for a payment."""
        if self._signer is None:
            raise RuntimeError("SandboxProcessorServer was started without a webhook_secret")
        body = {
            "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
            "type": f"payment.{status}",
            "paymentId": payment_id,
            "status": status,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        body.update(extra)
        raw = json.dumps(body).encode()
        return raw, self._signer.header_value(raw)

    def start(self) -> None:
        self._server = ThreadingHTTPServer((self._host, self._port), _ProcessorHandler)
        self._server.state = self._state  # type: ignore[attr-defined]
        # Get the actual port (useful when port=0)
        self._port = self._server.server_address[1]
        self._state["base_url"] = f"http://{self._host}:{self._port}"
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}/v1"

    @property
    def port(self) -> int:
        return self._port

    @property
    def signature_header(self) -> str:
        return SIGNATURE_HEADER

    def get_requests(self, method: str | None = None, path: str | None = None) -> list[dict]:
        with self._state["lock"]:
            return [
                r for r in self._state["requests"]
                if (method is None or r["method"] == method)
                and (path is None or r["path"] == path)
            ]

    def get_payment(self, payment_id: str) -> dict | None:
        with self._state["lock"]:
            payment = self._state["payments"].get(payment_id)
            return dict(payment) if payment else None

    @property
    def created_count(self) -> int:
        with self._state["lock"]:
            return self._state["created_count"]

    def reset(self) -> None:
        with self._state["lock"]:
            self._state["scripted"].clear()
            self._state["payments"].clear()
            self._state["idempotency"].clear()
            self._state["refund_keys"].clear()
            self._state["requests"].clear()
            self._state["created_count"] = 0
