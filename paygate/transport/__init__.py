from .adapter import ApiRequest, TransportAdapter
from .log import AttemptLog

__all__ = [
    "ApiRequest",
    "TransportAdapter",
    "AttemptLog",
]
