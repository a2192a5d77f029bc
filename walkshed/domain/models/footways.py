from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class OsmNode:
    id: int
    lat: float
    lon: float


@dataclass(frozen=True, slots=True)
class OsmWay:
    id: int
    node_ids: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class FootwayNetwork:
    """Raw pedestrian network as returned by an Overpass endpoint."""

    nodes: tuple[OsmNode, ...] = ()
    ways: tuple[OsmWay, ...] = ()


@dataclass(frozen=True, slots=True)
class FetchOk:
    network: FootwayNetwork
    endpoint: str


@dataclass(frozen=True, slots=True)
class AllEndpointsFailed:
    endpoints: tuple[str, ...] = ()


FetchOutcome = FetchOk | AllEndpointsFailed


@dataclass(frozen=True, slots=True)
class EndpointStats:
    latency_ms: float | None = None  # exponential moving average
    failure_streak: int = 0


@dataclass(frozen=True, slots=True)
class EndpointStatsSnapshot:
    stats_by_endpoint: dict[str, EndpointStats]
    preferred_endpoint: str | None = None
