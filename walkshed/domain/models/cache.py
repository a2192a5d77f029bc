from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .geo import GeoPoint


class CacheEntryKind(str, Enum):
    POLYGON = "polygon"
    UNAVAILABLE = "unavailable"


class UnavailableReason(str, Enum):
    TRANSIENT = "transient"  # network, timeout, malformed payload
    NO_DATA = "no_data"  # valid response without usable paths


@dataclass(frozen=True, slots=True)
class PolygonEntry:
    points: tuple[GeoPoint, ...]
    updated_at_ms: int

    @property
    def kind(self) -> CacheEntryKind:
        return CacheEntryKind.POLYGON


@dataclass(frozen=True, slots=True)
class UnavailableEntry:
    retry_after_ms: int
    updated_at_ms: int

    @property
    def kind(self) -> CacheEntryKind:
        return CacheEntryKind.UNAVAILABLE

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.retry_after_ms


CacheEntry = PolygonEntry | UnavailableEntry


def cache_key(stop_id: str, distance_m: int) -> str:
    return f"{stop_id}:{int(distance_m)}"
