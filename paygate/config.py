"""
Configuration for a gateway client.

A ``GatewayConfig`` is passed explicitly to every component at construction;
nothing is read from module-level state, so several independently configured
clients can live in one process.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping
from urllib.parse import urlparse

from paygate.errors import ConfigError

__all__ = [
    "Environment",
    "GatewayConfig",
]


class Environment(Enum):
    PRODUCTION = "production"
    SANDBOX = "sandbox"


DEFAULT_BASE_URLS = {
    Environment.PRODUCTION: "https://api.paygate.io/v1",
    Environment.SANDBOX: "https://sandbox.paygate.io/v1",
}

# Accepted spellings for from_mapping(); camelCase mirrors the wire-level names.
_KEY_ALIASES = {
    "apiKey": "api_key",
    "environment": "environment",
    "timeoutMs": "timeout_ms",
    "maxRetries": "max_retries",
    "sharedSecret": "shared_secret",
    "baseUrl": "base_url",
    "retryBaseDelayMs": "retry_base_delay_ms",
    "retryMaxDelayMs": "retry_max_delay_ms",
    "maxRetryAfterMs": "max_retry_after_ms",
    "idempotencyTtlSeconds": "idempotency_ttl_seconds",
    "webhookDedupTtlSeconds": "webhook_dedup_ttl_seconds",
    "webhookDedupMaxEntries": "webhook_dedup_max_entries",
}

_INT_FIELDS = (
    "timeout_ms",
    "max_retries",
    "retry_base_delay_ms",
    "retry_max_delay_ms",
    "max_retry_after_ms",
    "idempotency_ttl_seconds",
    "webhook_dedup_ttl_seconds",
    "webhook_dedup_max_entries",
)


@dataclass(frozen=True)
class GatewayConfig:
    api_key: str
    environment: Environment = Environment.SANDBOX
    timeout_ms: int = 5000
    max_retries: int = 3
    shared_secret: str | None = None
    base_url: str | None = None
    retry_base_delay_ms: int = 500
    retry_max_delay_ms: int = 8000
    max_retry_after_ms: int = 60_000
    idempotency_ttl_seconds: int = 24 * 60 * 60
    webhook_dedup_ttl_seconds: int = 72 * 60 * 60
    webhook_dedup_max_entries: int = 100_000

    def __post_init__(self):
        if not isinstance(self.api_key, str) or not self.api_key.strip():
            raise ConfigError("api_key must not be empty")

        if not isinstance(self.environment, Environment):
            try:
                object.__setattr__(self, "environment", Environment(str(self.environment).lower()))
            except ValueError as exc:
                raise ConfigError(
                    f"environment must be 'production' or 'sandbox', got {self.environment!r}"
                ) from exc

        if self.timeout_ms <= 0:
            raise ConfigError("timeout_ms must be greater than zero")
        if self.max_retries < 0:
            raise ConfigError("max_retries must not be negative")
        if self.retry_base_delay_ms < 0 or self.retry_max_delay_ms < 0:
            raise ConfigError("retry delays must not be negative")
        if self.retry_max_delay_ms < self.retry_base_delay_ms:
            raise ConfigError("retry_max_delay_ms must be >= retry_base_delay_ms")
        if self.max_retry_after_ms < 0:
            raise ConfigError("max_retry_after_ms must not be negative")
        if self.idempotency_ttl_seconds <= 0 or self.webhook_dedup_ttl_seconds <= 0:
            raise ConfigError("retention windows must be greater than zero")
        if self.webhook_dedup_max_entries <= 0:
            raise ConfigError("webhook_dedup_max_entries must be greater than zero")

        if self.base_url is not None:
            parsed = urlparse(self.base_url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ConfigError(f"base_url is not a valid http(s) URL: {self.base_url!r}")

    @property
    def api_base_url(self) -> str:
        return (self.base_url or DEFAULT_BASE_URLS[self.environment]).rstrip("/")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    def require_shared_secret(self) -> str:
        if not self.shared_secret:
            raise ConfigError("shared_secret is required to verify webhooks")
        return self.shared_secret

    def __repr__(self) -> str:
        return (
            f"GatewayConfig(environment={self.environment.value!r}, "
            f"base_url={self.api_base_url!r}, timeout_ms={self.timeout_ms}, "
            f"max_retries={self.max_retries})"
        )

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "GatewayConfig":
        """Build a config from a plain mapping (camelCase or snake_case keys)."""
        kwargs: dict[str, Any] = {}
        for key, value in values.items():
            name = _KEY_ALIASES.get(key, key)
            if name not in cls.__dataclass_fields__:
                raise ConfigError(f"Unknown configuration key '{key}'")
            if value is None:
                continue
            if name in _INT_FIELDS:
                try:
                    value = int(value)
                except (TypeError, ValueError) as exc:
                    raise ConfigError(f"{key} must be an integer, got {value!r}") from exc
            kwargs[name] = value

        if "api_key" not in kwargs:
            raise ConfigError("api_key must be provided")
        return cls(**kwargs)
