from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class GeoPoint:
    lat: float
    lon: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.lat <= 90.0):
            raise ValueError(f"Invalid latitude: {self.lat}")
        if not (-180.0 <= self.lon <= 180.0):
            raise ValueError(f"Invalid longitude: {self.lon}")


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Axis-aligned lat/lon box (e.g. a map viewport)."""

    south: float
    west: float
    north: float
    east: float

    def contains(self, point: GeoPoint) -> bool:
        return (
            self.south <= point.lat <= self.north
            and self.west <= point.lon <= self.east
        )

    def pad(self, ratio: float) -> BoundingBox:
        """Grow every side by `ratio` times the box span (Leaflet semantics)."""

        d_lat = abs(self.north - self.south) * ratio
        d_lon = abs(self.east - self.west) * ratio
        return BoundingBox(
            south=self.south - d_lat,
            west=self.west - d_lon,
            north=self.north + d_lat,
            east=self.east + d_lon,
        )
