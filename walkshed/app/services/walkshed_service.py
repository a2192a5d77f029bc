from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Sequence

from walkshed.app.ports.output import IFootwayDataProvider
from walkshed.app.services.walkshed_cache import WalkshedCacheStore
from walkshed.domain.algorithms.polygon import build_polygon_from_seed_nodes
from walkshed.domain.algorithms.seeds import select_preferred_seeds
from walkshed.domain.algorithms.walk_graph import (
    build_walk_graph,
    nearest_node_candidates,
)
from walkshed.domain.constants import (
    CONCAVE_HULL_RATIO,
    GRAPH_CACHE_COORD_PRECISION,
    MAX_SEED_DISTANCE_DELTA_M,
    MIN_BOUNDARY_POINTS_FOR_RELIABLE_POLYGON,
    NO_DATA_RETRY_AFTER_S,
    SNAP_DISTANCE_M,
    START_NODE_CANDIDATE_LIMIT,
    TRANSIENT_RETRY_AFTER_S,
)
from walkshed.domain.models import (
    AllEndpointsFailed,
    GeoPoint,
    PolygonAttempt,
    PolygonEntry,
    SeedMatch,
    Stop,
    UnavailableEntry,
    UnavailableReason,
    WalkGraph,
    cache_key,
)

logger = logging.getLogger(__name__)

Polygon = tuple[GeoPoint, ...]
GraphResult = tuple[WalkGraph | None, UnavailableReason | None]


def _now_ms() -> int:
    return int(time.time() * 1000)


def graph_cache_key(center: GeoPoint, distance_m: float) -> tuple[float, float, int]:
    return (
        round(center.lat, GRAPH_CACHE_COORD_PRECISION),
        round(center.lon, GRAPH_CACHE_COORD_PRECISION),
        int(distance_m),
    )


@dataclass(slots=True)
class WalkshedService:
    """Computes (and caches) the walkshed polygon of a stop.

    Lookup order: the cache store (its in-memory snapshot first), then a
    fresh computation from Overpass data. Failures are cached as
    "unavailable" entries so a broken stop is not re-fetched on every pass.

    Each stop carries a generation that `invalidate_stop` bumps; a
    computation that started under an older generation (or before a cache
    reset) returns its result but does not write it to the cache.
    """

    footway_provider: IFootwayDataProvider
    cache_store: WalkshedCacheStore
    now_ms: Callable[[], int] = _now_ms

    snap_distance_m: float = SNAP_DISTANCE_M
    candidate_limit: int = START_NODE_CANDIDATE_LIMIT
    min_boundary_points: int = MIN_BOUNDARY_POINTS_FOR_RELIABLE_POLYGON
    seed_delta_m: float = MAX_SEED_DISTANCE_DELTA_M
    concave_ratio: float = CONCAVE_HULL_RATIO
    transient_retry_after_s: int = TRANSIENT_RETRY_AFTER_S
    no_data_retry_after_s: int = NO_DATA_RETRY_AFTER_S
    # 0 checks the shared reset marker on every lookup.
    reset_check_interval_s: float = 0.0

    _generations: dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _reset_epoch: int = field(default=0, init=False, repr=False)
    _last_reset_check_ms: int | None = field(default=None, init=False, repr=False)
    _graph_tasks: dict[tuple[float, float, int], asyncio.Task] = field(
        default_factory=dict, init=False, repr=False
    )

    def _token(self, stop_id: str) -> tuple[int, int]:
        return self._reset_epoch, self._generations.get(stop_id, 0)

    async def _check_reset(self) -> None:
        now = self.now_ms()
        last = self._last_reset_check_ms
        if last is not None and now - last < self.reset_check_interval_s * 1000:
            return
        self._last_reset_check_ms = now
        if await self.cache_store.check_reset_marker():
            self.forget_in_process()

    async def get_or_compute(self, stop: Stop, distance_m: float) -> Polygon | None:
        key = cache_key(stop.id, int(distance_m))
        await self._check_reset()
        token = self._token(stop.id)

        entry = await self.cache_store.get(key)
        if isinstance(entry, PolygonEntry):
            return entry.points
        if isinstance(entry, UnavailableEntry):
            return None

        graph, reason = await self._load_graph(stop.location, distance_m)
        polygon = None
        if graph is not None:
            polygon = self.compute_polygon(graph, stop.location, distance_m)

        if self._token(stop.id) != token:
            logger.info(
                "Walkshed result outdated; not cached",
                extra={"key": key, "stop_id": stop.id},
            )
            return polygon

        if graph is None:
            await self._mark_unavailable(key, reason or UnavailableReason.NO_DATA)
            return None
        if polygon is None:
            await self._mark_unavailable(key, UnavailableReason.NO_DATA)
            return None

        await self.cache_store.set_polygon(key, polygon)
        return polygon

    def compute_polygon(
        self, graph: WalkGraph, center: GeoPoint, distance_m: float
    ) -> Polygon | None:
        candidates = nearest_node_candidates(
            graph,
            center,
            snap_distance_m=self.snap_distance_m,
            limit=self.candidate_limit,
        )
        if not candidates:
            return None

        preferred = select_preferred_seeds(candidates, max_delta_m=self.seed_delta_m)
        best = self._attempt(graph, center, distance_m, preferred)

        if (
            best.boundary_point_count < self.min_boundary_points
            and len(candidates) > len(preferred)
        ):
            expanded = self._attempt(graph, center, distance_m, candidates)
            if expanded.polygon is not None and (
                best.polygon is None
                or expanded.boundary_point_count > best.boundary_point_count
            ):
                best = expanded

        return best.polygon

    def _attempt(
        self,
        graph: WalkGraph,
        center: GeoPoint,
        distance_m: float,
        seeds: Sequence[SeedMatch],
    ) -> PolygonAttempt:
        return build_polygon_from_seed_nodes(
            graph, center, distance_m, seeds, concave_ratio=self.concave_ratio
        )

    async def _load_graph(self, center: GeoPoint, distance_m: float) -> GraphResult:
        key = graph_cache_key(center, distance_m)
        task = self._graph_tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_graph(center, distance_m))
            self._graph_tasks[key] = task

            def _forget(done: asyncio.Task, key=key) -> None:
                if self._graph_tasks.get(key) is done:
                    del self._graph_tasks[key]

            task.add_done_callback(_forget)

        return await asyncio.shield(task)

    async def _fetch_graph(self, center: GeoPoint, distance_m: float) -> GraphResult:
        outcome = await self.footway_provider.fetch_footways(
            center=center, radius_m=distance_m
        )
        if isinstance(outcome, AllEndpointsFailed):
            return None, UnavailableReason.TRANSIENT

        graph = build_walk_graph(outcome.network)
        if graph is None:
            return None, UnavailableReason.NO_DATA
        return graph, None

    async def _mark_unavailable(self, key: str, reason: UnavailableReason) -> None:
        delay_s = (
            self.transient_retry_after_s
            if reason is UnavailableReason.TRANSIENT
            else self.no_data_retry_after_s
        )
        await self.cache_store.set_unavailable(key, self.now_ms() + delay_s * 1000)
        logger.warning(
            "Walkshed unavailable",
            extra={"key": key, "reason": reason.value, "retry_after_s": delay_s},
        )

    async def invalidate_stop(self, stop_id: str) -> int:
        self._generations[stop_id] = self._generations.get(stop_id, 0) + 1
        return await self.cache_store.delete_for_stop(stop_id)

    async def clear_caches(self) -> int:
        self._reset_epoch += 1
        return await self.cache_store.clear()

    def forget_in_process(self) -> None:
        """Outdate running computations (after another process reset the cache)."""

        self._reset_epoch += 1
