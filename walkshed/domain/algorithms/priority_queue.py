from __future__ import annotations

import heapq


class MinPriorityQueue:
    """Binary min-heap of graph nodes keyed by accumulated distance."""

    __slots__ = ("_heap",)

    def __init__(self) -> None:
        self._heap: list[tuple[float, int]] = []

    def push(self, node: int, distance: float) -> None:
        heapq.heappush(self._heap, (distance, node))

    def pop(self) -> tuple[int, float] | None:
        if not self._heap:
            return None
        distance, node = heapq.heappop(self._heap)
        return node, distance

    def __len__(self) -> int:
        return len(self._heap)
