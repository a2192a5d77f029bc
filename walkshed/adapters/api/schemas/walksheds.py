from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class GeoPointSchema(BaseModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)


class StopSchema(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)
    type: Literal["tram", "train", "bus"] = "bus"
    is_custom: bool = False


class WalkshedRequestSchema(BaseModel):
    stop: StopSchema
    distance_m: float | None = Field(default=None, gt=0.0, le=5000.0)


class WalkshedResponseSchema(BaseModel):
    stop_id: str
    distance_m: int
    polygon: list[GeoPointSchema] | None = None


class CacheStatsSchema(BaseModel):
    size: int
    polygon_entries: int
    unavailable_entries: int
    backend: str


class CacheClearedSchema(BaseModel):
    removed: int
