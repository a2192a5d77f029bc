from __future__ import annotations

import os
from functools import lru_cache

from walkshed.adapters.aws import _env_bool
from walkshed.adapters.overpass.overpass_footway_provider import OverpassFootwayProvider
from walkshed.adapters.persistence import (
    DynamoDbWalkshedCacheBackend,
    JsonFileEndpointStatsStore,
    JsonFileWalkshedCacheBackend,
)
from walkshed.app.ports.output import IWalkshedCacheBackend
from walkshed.app.services.coverage_settings import CoverageSettings
from walkshed.app.services.walkshed_cache import WalkshedCacheStore
from walkshed.app.services.walkshed_service import WalkshedService


def build_cache_store() -> WalkshedCacheStore:
    backends: list[IWalkshedCacheBackend] = []
    if _env_bool("WALKSHED_CACHE_USE_DYNAMODB", True):
        backends.append(DynamoDbWalkshedCacheBackend())
    backends.append(JsonFileWalkshedCacheBackend())
    return WalkshedCacheStore(backends=tuple(backends))


@lru_cache(maxsize=1)
def get_walkshed_service() -> WalkshedService:
    provider = OverpassFootwayProvider(stats_store=JsonFileEndpointStatsStore())
    service = WalkshedService(footway_provider=provider, cache_store=build_cache_store())

    # Allow tuning via env without changing code.
    if os.getenv("SNAP_DISTANCE_M"):
        service.snap_distance_m = float(os.environ["SNAP_DISTANCE_M"])
    if os.getenv("START_NODE_CANDIDATE_LIMIT"):
        service.candidate_limit = int(os.environ["START_NODE_CANDIDATE_LIMIT"])
    if os.getenv("MIN_BOUNDARY_POINTS"):
        service.min_boundary_points = int(os.environ["MIN_BOUNDARY_POINTS"])
    if os.getenv("SEED_DISTANCE_DELTA_M"):
        service.seed_delta_m = float(os.environ["SEED_DISTANCE_DELTA_M"])
    if os.getenv("WALKSHED_RESET_CHECK_INTERVAL_S"):
        service.reset_check_interval_s = float(os.environ["WALKSHED_RESET_CHECK_INTERVAL_S"])

    return service


@lru_cache(maxsize=1)
def get_coverage_settings() -> CoverageSettings:
    return CoverageSettings(
        default_radius_m=os.getenv("WALKSHED_DEFAULT_RADIUS_M") or 300
    )
