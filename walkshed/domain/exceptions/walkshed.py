class WalkshedError(Exception):
    """Base exception for walkshed computation failures."""


class InvalidOverpassPayload(WalkshedError):
    """Raised when an Overpass response does not have the expected shape."""


class CacheBackendError(WalkshedError):
    """Raised inside a cache backend when the underlying storage misbehaves."""
