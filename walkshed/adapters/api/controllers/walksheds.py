from __future__ import annotations

from fastapi import APIRouter, Depends

from walkshed.adapters.api.dependencies import get_coverage_settings, get_walkshed_service
from walkshed.adapters.api.schemas.walksheds import (
    CacheClearedSchema,
    CacheStatsSchema,
    GeoPointSchema,
    WalkshedRequestSchema,
    WalkshedResponseSchema,
)
from walkshed.app.services.coverage_settings import CoverageSettings, normalize_radius
from walkshed.app.services.walkshed_service import WalkshedService
from walkshed.domain.models import GeoPoint, Stop, StopType

router = APIRouter(tags=["walksheds"])


@router.post("/walksheds", response_model=WalkshedResponseSchema)
async def compute_walkshed(
    req: WalkshedRequestSchema,
    service: WalkshedService = Depends(get_walkshed_service),
    settings: CoverageSettings = Depends(get_coverage_settings),
) -> WalkshedResponseSchema:
    stop = Stop(
        id=req.stop.id,
        name=req.stop.name,
        location=GeoPoint(lat=req.stop.lat, lon=req.stop.lon),
        type=StopType(req.stop.type),
        is_custom=req.stop.is_custom,
    )
    if req.distance_m is None:
        distance_m = settings.radius_for(stop.type)
    else:
        distance_m = normalize_radius(req.distance_m, settings.default_radius_m)

    polygon = await service.get_or_compute(stop, distance_m)
    return WalkshedResponseSchema(
        stop_id=stop.id,
        distance_m=distance_m,
        polygon=(
            [GeoPointSchema(lat=p.lat, lon=p.lon) for p in polygon]
            if polygon is not None
            else None
        ),
    )


@router.get("/walksheds/cache", response_model=CacheStatsSchema)
async def cache_stats(
    service: WalkshedService = Depends(get_walkshed_service),
) -> CacheStatsSchema:
    await service.cache_store.load()
    return CacheStatsSchema(**service.cache_store.stats())


@router.delete("/walksheds/cache", response_model=CacheClearedSchema)
async def clear_cache(
    service: WalkshedService = Depends(get_walkshed_service),
) -> CacheClearedSchema:
    removed = await service.clear_caches()
    return CacheClearedSchema(removed=removed)


@router.delete("/walksheds/cache/{stop_id}", response_model=CacheClearedSchema)
async def invalidate_stop(
    stop_id: str,
    service: WalkshedService = Depends(get_walkshed_service),
) -> CacheClearedSchema:
    removed = await service.invalidate_stop(stop_id)
    await service.cache_store.flush()
    return CacheClearedSchema(removed=removed)
