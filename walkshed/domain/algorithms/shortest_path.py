from __future__ import annotations

import math
from typing import Iterable

from walkshed.domain.models import SeedMatch, WalkGraph

from .priority_queue import MinPriorityQueue


def shortest_path_distances(
    graph: WalkGraph, seeds: Iterable[SeedMatch], max_distance_m: float
) -> list[float]:
    """Multi-source Dijkstra bounded by `max_distance_m`.

    Each seed starts with its own distance (the walk from the stop to that
    node). Nodes not reachable within the budget keep `math.inf`.
    """

    distances = [math.inf] * len(graph.nodes)
    queue = MinPriorityQueue()

    for seed in seeds:
        if not (0 <= seed.node_index < len(distances)):
            continue
        if seed.distance_m > max_distance_m:
            continue
        if seed.distance_m < distances[seed.node_index]:
            distances[seed.node_index] = seed.distance_m
            queue.push(seed.node_index, seed.distance_m)

    while queue:
        current = queue.pop()
        if current is None:
            break
        node, distance = current

        if distance > max_distance_m:
            break
        if distance > distances[node]:
            continue

        for edge in graph.adjacency[node]:
            next_distance = distance + edge.distance_m
            if next_distance >= distances[edge.to] or next_distance > max_distance_m:
                continue
            distances[edge.to] = next_distance
            queue.push(edge.to, next_distance)

    return distances
