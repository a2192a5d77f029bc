from .dynamodb_walkshed_cache_backend import DynamoDbWalkshedCacheBackend
from .json_file_endpoint_stats_store import JsonFileEndpointStatsStore
from .json_file_walkshed_cache_backend import JsonFileWalkshedCacheBackend

__all__ = [
    "DynamoDbWalkshedCacheBackend",
    "JsonFileEndpointStatsStore",
    "JsonFileWalkshedCacheBackend",
]
