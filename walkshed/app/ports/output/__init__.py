from .endpoint_stats_store import IEndpointStatsStore
from .footway_data_provider import IFootwayDataProvider
from .overlay_renderer import IOverlayRenderer
from .walkshed_cache_backend import IWalkshedCacheBackend

__all__ = [
    "IEndpointStatsStore",
    "IFootwayDataProvider",
    "IOverlayRenderer",
    "IWalkshedCacheBackend",
]
