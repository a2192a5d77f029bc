from .cache import (
    CacheEntry,
    CacheEntryKind,
    PolygonEntry,
    UnavailableEntry,
    UnavailableReason,
    cache_key,
)
from .footways import (
    AllEndpointsFailed,
    EndpointStats,
    EndpointStatsSnapshot,
    FetchOk,
    FetchOutcome,
    FootwayNetwork,
    OsmNode,
    OsmWay,
)
from .geo import BoundingBox, GeoPoint
from .graph import Edge, PolygonAttempt, SeedMatch, WalkGraph
from .stop import Stop, StopType

__all__ = [
    "AllEndpointsFailed",
    "BoundingBox",
    "CacheEntry",
    "CacheEntryKind",
    "Edge",
    "EndpointStats",
    "EndpointStatsSnapshot",
    "FetchOk",
    "FetchOutcome",
    "FootwayNetwork",
    "GeoPoint",
    "OsmNode",
    "OsmWay",
    "PolygonAttempt",
    "PolygonEntry",
    "SeedMatch",
    "Stop",
    "StopType",
    "UnavailableEntry",
    "UnavailableReason",
    "WalkGraph",
    "cache_key",
]
