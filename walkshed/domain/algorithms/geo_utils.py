from __future__ import annotations

import math

from walkshed.domain.constants import (
    EARTH_RADIUS_M,
    METERS_PER_LAT_DEGREE,
    QUERY_PADDING_M,
)
from walkshed.domain.models import BoundingBox, GeoPoint


def haversine_distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in meters."""

    lat1 = math.radians(a.lat)
    lon1 = math.radians(a.lon)
    lat2 = math.radians(b.lat)
    lon2 = math.radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    s = (
        math.sin(dlat / 2.0) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2.0) ** 2
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(math.sqrt(s))


def meters_per_lon_degree(lat: float) -> float:
    # Floor the cosine so boxes near the poles stay finite.
    return METERS_PER_LAT_DEGREE * max(0.2, math.cos(math.radians(lat)))


def bbox_for_stop(
    center: GeoPoint, radius_m: float, *, padding_m: float = QUERY_PADDING_M
) -> BoundingBox:
    radius = float(radius_m) + float(padding_m)
    lat_delta = radius / METERS_PER_LAT_DEGREE
    lon_delta = radius / meters_per_lon_degree(center.lat)
    return BoundingBox(
        south=center.lat - lat_delta,
        west=center.lon - lon_delta,
        north=center.lat + lat_delta,
        east=center.lon + lon_delta,
    )


def to_local_meters(point: GeoPoint, center: GeoPoint) -> tuple[float, float]:
    """Project onto a planar (x=east, y=north) meter grid centered on `center`."""

    return (
        (point.lon - center.lon) * meters_per_lon_degree(center.lat),
        (point.lat - center.lat) * METERS_PER_LAT_DEGREE,
    )


def from_local_meters(xy: tuple[float, float], center: GeoPoint) -> GeoPoint:
    x, y = xy
    return GeoPoint(
        lat=center.lat + y / METERS_PER_LAT_DEGREE,
        lon=center.lon + x / meters_per_lon_degree(center.lat),
    )


def interpolate(a: GeoPoint, b: GeoPoint, t: float) -> GeoPoint:
    t = max(0.0, min(1.0, float(t)))
    return GeoPoint(
        lat=a.lat + (b.lat - a.lat) * t,
        lon=a.lon + (b.lon - a.lon) * t,
    )
