from __future__ import annotations

import math
from typing import Sequence

import shapely
from shapely.geometry import MultiPoint, Polygon

from walkshed.domain.constants import (
    CONCAVE_HULL_RATIO,
    LOCAL_POINT_KEY_DECIMALS,
    MIN_EFFECTIVE_WALK_DISTANCE_M,
    POINT_KEY_DECIMALS,
)
from walkshed.domain.models import GeoPoint, PolygonAttempt, SeedMatch, WalkGraph

from .geo_utils import from_local_meters, interpolate, to_local_meters
from .shortest_path import shortest_path_distances

LocalPoint = tuple[float, float]


def _point_key(point: GeoPoint) -> tuple[float, float]:
    return (round(point.lat, POINT_KEY_DECIMALS), round(point.lon, POINT_KEY_DECIMALS))


def _add_unique(points: list[GeoPoint], seen: set[tuple[float, float]], p: GeoPoint) -> None:
    key = _point_key(p)
    if key in seen:
        return
    seen.add(key)
    points.append(p)


def collect_boundary_points(
    graph: WalkGraph, distances: Sequence[float], max_distance_m: float
) -> list[GeoPoint]:
    """Collect reachable nodes plus the points where the budget runs out on an edge."""

    points: list[GeoPoint] = []
    seen: set[tuple[float, float]] = set()

    for u, edges in enumerate(graph.adjacency):
        du = distances[u]
        u_reachable = math.isfinite(du) and du <= max_distance_m

        for edge in edges:
            v = edge.to
            # Each undirected edge is visited once.
            if u > v:
                continue

            dv = distances[v]
            v_reachable = math.isfinite(dv) and dv <= max_distance_m
            if not u_reachable and not v_reachable:
                continue

            pu = graph.nodes[u]
            pv = graph.nodes[v]

            if u_reachable:
                _add_unique(points, seen, pu)
                remaining = max_distance_m - du
                if 0.0 < remaining < edge.distance_m:
                    _add_unique(points, seen, interpolate(pu, pv, remaining / edge.distance_m))

            if v_reachable:
                _add_unique(points, seen, pv)
                remaining = max_distance_m - dv
                if 0.0 < remaining < edge.distance_m:
                    _add_unique(points, seen, interpolate(pv, pu, remaining / edge.distance_m))

    return points


def _cross(o: LocalPoint, a: LocalPoint, b: LocalPoint) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def convex_hull(points: Sequence[LocalPoint]) -> list[LocalPoint]:
    """Andrew's monotone chain; counter-clockwise, no closing point."""

    unique = sorted(set(points))
    if len(unique) <= 2:
        return unique

    lower: list[LocalPoint] = []
    for p in unique:
        while len(lower) >= 2 and _cross(lower[-2], lower[-1], p) <= 0:
            lower.pop()
        lower.append(p)

    upper: list[LocalPoint] = []
    for p in reversed(unique):
        while len(upper) >= 2 and _cross(upper[-2], upper[-1], p) <= 0:
            upper.pop()
        upper.append(p)

    return lower[:-1] + upper[:-1]


def concave_hull(
    points: Sequence[LocalPoint], *, ratio: float = CONCAVE_HULL_RATIO
) -> list[LocalPoint]:
    """Concave hull ring via GEOS; empty list when the result is not an area."""

    hull = shapely.concave_hull(MultiPoint(list(points)), ratio=ratio)
    if not isinstance(hull, Polygon) or hull.is_empty:
        return []

    ring = [(float(x), float(y)) for x, y in hull.exterior.coords]
    if len(ring) >= 2 and ring[0] == ring[-1]:
        ring.pop()

    return [p for p in ring if math.isfinite(p[0]) and math.isfinite(p[1])]


def polygon_from_boundary_points(
    boundary_points: Sequence[GeoPoint],
    center: GeoPoint,
    *,
    concave_ratio: float = CONCAVE_HULL_RATIO,
) -> tuple[GeoPoint, ...] | None:
    seen: set[tuple[float, float]] = set()
    local_points: list[LocalPoint] = []
    for point in boundary_points:
        local = to_local_meters(point, center)
        key = (
            round(local[0], LOCAL_POINT_KEY_DECIMALS),
            round(local[1], LOCAL_POINT_KEY_DECIMALS),
        )
        if key in seen:
            continue
        seen.add(key)
        local_points.append(local)

    if len(local_points) < 3:
        return None

    ring = concave_hull(local_points, ratio=concave_ratio)
    if len(ring) < 3:
        ring = convex_hull(local_points)
    if len(ring) < 3:
        return None

    return tuple(from_local_meters(p, center) for p in ring)


def build_polygon_from_seed_nodes(
    graph: WalkGraph,
    center: GeoPoint,
    distance_m: float,
    seeds: Sequence[SeedMatch],
    *,
    concave_ratio: float = CONCAVE_HULL_RATIO,
) -> PolygonAttempt:
    usable = [
        s for s in seeds if distance_m - s.distance_m >= MIN_EFFECTIVE_WALK_DISTANCE_M
    ]
    if not usable:
        return PolygonAttempt(polygon=None, boundary_point_count=0)

    distances = shortest_path_distances(graph, usable, distance_m)
    boundary = collect_boundary_points(graph, distances, distance_m)

    # The stop itself always anchors the shape.
    seen = {_point_key(p) for p in boundary}
    _add_unique(boundary, seen, center)

    return PolygonAttempt(
        polygon=polygon_from_boundary_points(boundary, center, concave_ratio=concave_ratio),
        boundary_point_count=len(boundary),
    )
