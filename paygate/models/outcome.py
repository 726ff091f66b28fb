from dataclasses import dataclass, field


@dataclass(frozen=True)
class Success:
    http_status: int
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NetworkFailure:
    reason: str
    # False for requests that can never be sent (bad URL, bad schema)
    retryable: bool = True


@dataclass(frozen=True)
class Timeout:
    elapsed_ms: float


@dataclass(frozen=True)
class HttpError:
    status: int
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


@dataclass(frozen=True)
class Cancelled:
    reason: str = "cancelled"


Outcome = Success | NetworkFailure | Timeout | HttpError | Cancelled
