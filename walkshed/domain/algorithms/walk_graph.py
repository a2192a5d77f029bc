from __future__ import annotations

import math

from walkshed.domain.constants import SNAP_DISTANCE_M, START_NODE_CANDIDATE_LIMIT
from walkshed.domain.models import Edge, FootwayNetwork, GeoPoint, SeedMatch, WalkGraph

from .geo_utils import haversine_distance_m


def build_walk_graph(network: FootwayNetwork) -> WalkGraph | None:
    """Build an undirected weighted graph from raw Overpass nodes and ways.

    Returns None when the network holds no ways or fewer than two usable
    nodes; callers treat that as "no usable path data".
    """

    if not network.ways:
        return None

    location_by_id: dict[int, GeoPoint] = {}
    for node in network.nodes:
        try:
            location_by_id[node.id] = GeoPoint(lat=node.lat, lon=node.lon)
        except ValueError:
            continue

    # Only nodes referenced by a way become graph nodes (first-seen order).
    nodes: list[GeoPoint] = []
    index_by_id: dict[int, int] = {}
    for way in network.ways:
        for node_id in way.node_ids:
            if node_id in index_by_id:
                continue
            location = location_by_id.get(node_id)
            if location is None:
                continue
            index_by_id[node_id] = len(nodes)
            nodes.append(location)

    if len(nodes) < 2:
        return None

    adjacency: list[list[Edge]] = [[] for _ in nodes]
    seen_pairs: set[tuple[int, int]] = set()

    for way in network.ways:
        for from_id, to_id in zip(way.node_ids, way.node_ids[1:]):
            a = index_by_id.get(from_id)
            b = index_by_id.get(to_id)
            if a is None or b is None or a == b:
                continue

            pair = (min(a, b), max(a, b))
            if pair in seen_pairs:
                continue
            seen_pairs.add(pair)

            distance = haversine_distance_m(nodes[a], nodes[b])
            if not math.isfinite(distance) or distance <= 0.0:
                continue

            adjacency[a].append(Edge(to=b, distance_m=distance))
            adjacency[b].append(Edge(to=a, distance_m=distance))

    return WalkGraph(
        nodes=tuple(nodes),
        adjacency=tuple(tuple(edges) for edges in adjacency),
    )


def nearest_node_candidates(
    graph: WalkGraph,
    point: GeoPoint,
    *,
    snap_distance_m: float = SNAP_DISTANCE_M,
    limit: int = START_NODE_CANDIDATE_LIMIT,
) -> list[SeedMatch]:
    matches: list[SeedMatch] = []
    for index, node in enumerate(graph.nodes):
        d = haversine_distance_m(point, node)
        if d > snap_distance_m:
            continue
        matches.append(SeedMatch(node_index=index, distance_m=d))

    matches.sort(key=lambda m: (m.distance_m, m.node_index))
    return matches[: max(0, int(limit))]
