from .walkshed import CacheBackendError, InvalidOverpassPayload, WalkshedError

__all__ = [
    "CacheBackendError",
    "InvalidOverpassPayload",
    "WalkshedError",
]
