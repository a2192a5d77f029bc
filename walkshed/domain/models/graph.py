from __future__ import annotations

from dataclasses import dataclass

from .geo import GeoPoint


@dataclass(frozen=True, slots=True)
class Edge:
    to: int
    distance_m: float


@dataclass(frozen=True, slots=True)
class WalkGraph:
    """Undirected footpath graph.

    `adjacency[i]` lists the edges leaving node `i`; every edge is stored in
    both directions with the same weight. Indices are only meaningful for this
    instance.
    """

    nodes: tuple[GeoPoint, ...]
    adjacency: tuple[tuple[Edge, ...], ...]


@dataclass(frozen=True, slots=True)
class SeedMatch:
    node_index: int
    distance_m: float


@dataclass(frozen=True, slots=True)
class PolygonAttempt:
    polygon: tuple[GeoPoint, ...] | None
    boundary_point_count: int
