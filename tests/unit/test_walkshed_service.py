from __future__ import annotations

import asyncio

import pytest

from walkshed.adapters.persistence import JsonFileWalkshedCacheBackend
from walkshed.app.ports.output import IFootwayDataProvider
from walkshed.app.services.walkshed_cache import WalkshedCacheStore
from walkshed.app.services.walkshed_service import WalkshedService, graph_cache_key
from walkshed.domain.algorithms.cache_eviction import CacheLimits
from walkshed.domain.algorithms.geo_utils import (
    from_local_meters,
    haversine_distance_m,
    to_local_meters,
)
from walkshed.domain.algorithms.walk_graph import build_walk_graph
from walkshed.domain.models import (
    AllEndpointsFailed,
    FetchOk,
    FetchOutcome,
    FootwayNetwork,
    GeoPoint,
    OsmNode,
    OsmWay,
    PolygonEntry,
    Stop,
    StopType,
    UnavailableEntry,
)

CENTER = GeoPoint(lat=49.0069, lon=8.4037)
STOP = Stop(id="karlsruhe-marktplatz", name="Marktplatz", location=CENTER, type=StopType.TRAM)
NOW_MS = 1_700_000_000_000


def _network(points: dict[int, tuple[float, float]], *ways: tuple[int, ...]) -> FootwayNetwork:
    nodes = []
    for node_id, xy in points.items():
        p = from_local_meters(xy, CENTER)
        nodes.append(OsmNode(id=node_id, lat=p.lat, lon=p.lon))
    return FootwayNetwork(
        nodes=tuple(nodes),
        ways=tuple(OsmWay(id=i + 1, node_ids=w) for i, w in enumerate(ways)),
    )


def _rectangle() -> FootwayNetwork:
    # 400 m x 1 m loop with the stop on a corner.
    return _network(
        {1: (0.0, 0.0), 2: (400.0, 0.0), 3: (400.0, 1.0), 4: (0.0, 1.0)},
        (1, 2, 3, 4, 1),
    )


class _FakeProvider(IFootwayDataProvider):
    def __init__(self, outcome: FetchOutcome) -> None:
        self.outcome = outcome
        self.calls = 0

    async def fetch_footways(self, *, center: GeoPoint, radius_m: float) -> FetchOutcome:
        self.calls += 1
        await asyncio.sleep(0)
        return self.outcome


def _service(provider: _FakeProvider) -> WalkshedService:
    store = WalkshedCacheStore(now_ms=lambda: NOW_MS)
    return WalkshedService(footway_provider=provider, cache_store=store, now_ms=lambda: NOW_MS)


@pytest.mark.unit
def test_rectangle_walkshed_stays_within_radius() -> None:
    provider = _FakeProvider(FetchOk(network=_rectangle(), endpoint="fake"))
    service = _service(provider)

    polygon = asyncio.run(service.get_or_compute(STOP, 300))

    assert polygon is not None
    assert len(polygon) >= 3
    assert polygon[0] != polygon[-1]
    assert all(haversine_distance_m(CENTER, p) <= 300.5 for p in polygon)
    # The walk reaches (almost) the full radius along the long side.
    assert max(to_local_meters(p, CENTER)[0] for p in polygon) > 290.0


@pytest.mark.unit
def test_cached_polygon_skips_the_network() -> None:
    provider = _FakeProvider(FetchOk(network=_rectangle(), endpoint="fake"))
    service = _service(provider)

    async def scenario() -> None:
        first = await service.get_or_compute(STOP, 300)
        second = await service.get_or_compute(STOP, 300)
        assert first == second
        await service.cache_store.flush()

    asyncio.run(scenario())

    assert provider.calls == 1


@pytest.mark.unit
def test_persisted_polygon_is_used_by_a_fresh_service() -> None:
    provider = _FakeProvider(AllEndpointsFailed(endpoints=("x",)))
    service = _service(provider)

    async def scenario() -> object:
        await service.cache_store.set_polygon("karlsruhe-marktplatz:300", (CENTER,) * 3)
        return await service.get_or_compute(STOP, 300)

    assert asyncio.run(scenario()) == (CENTER,) * 3
    assert provider.calls == 0


@pytest.mark.unit
def test_all_endpoints_failed_is_cached_briefly() -> None:
    provider = _FakeProvider(AllEndpointsFailed(endpoints=("a", "b")))
    service = _service(provider)

    async def scenario() -> None:
        assert await service.get_or_compute(STOP, 300) is None
        assert await service.get_or_compute(STOP, 300) is None

        entry = await service.cache_store.get("karlsruhe-marktplatz:300")
        assert isinstance(entry, UnavailableEntry)
        assert entry.retry_after_ms == NOW_MS + 5 * 60 * 1000

    asyncio.run(scenario())

    assert provider.calls == 1


@pytest.mark.unit
@pytest.mark.parametrize(
    "network",
    [
        FootwayNetwork(),
        # Footpaths exist but none within snapping distance of the stop.
        _network({1: (2000.0, 0.0), 2: (2100.0, 0.0)}, (1, 2)),
    ],
)
def test_no_usable_paths_is_cached_for_a_day(network: FootwayNetwork) -> None:
    provider = _FakeProvider(FetchOk(network=network, endpoint="fake"))
    service = _service(provider)

    async def scenario() -> UnavailableEntry | None:
        assert await service.get_or_compute(STOP, 300) is None
        entry = await service.cache_store.get("karlsruhe-marktplatz:300")
        assert isinstance(entry, UnavailableEntry)
        return entry

    entry = asyncio.run(scenario())
    assert entry is not None
    assert entry.retry_after_ms == NOW_MS + 24 * 60 * 60 * 1000


@pytest.mark.unit
def test_concurrent_requests_share_one_graph_fetch() -> None:
    provider = _FakeProvider(FetchOk(network=_rectangle(), endpoint="fake"))
    service = _service(provider)
    twin = Stop(id="platform-2", name="Marktplatz (2)", location=GeoPoint(lat=49.00691, lon=8.40371))

    async def scenario() -> list:
        return await asyncio.gather(
            service.get_or_compute(STOP, 300),
            service.get_or_compute(twin, 300),
        )

    first, second = asyncio.run(scenario())

    assert provider.calls == 1
    assert first is not None and second is not None
    assert graph_cache_key(STOP.location, 300) == graph_cache_key(twin.location, 300)


@pytest.mark.unit
def test_expanded_seeds_rescue_an_isolated_snap() -> None:
    # The nearest nodes form a tiny stub; the real network starts 60 m away.
    points: dict[int, tuple[float, float]] = {1: (0.0, 0.0), 2: (5.0, 0.0)}
    grid_ids = []
    for i, x in enumerate((60.0, 110.0, 160.0)):
        for j, y in enumerate((-50.0, 0.0, 50.0)):
            node_id = 10 + i * 3 + j
            points[node_id] = (x, y)
            grid_ids.append(node_id)
    rows = [tuple(10 + i * 3 + j for i in range(3)) for j in range(3)]
    cols = [tuple(10 + i * 3 + j for j in range(3)) for i in range(3)]
    graph = build_walk_graph(_network(points, (1, 2), *rows, *cols))
    assert graph is not None

    service = _service(_FakeProvider(AllEndpointsFailed()))
    polygon = service.compute_polygon(graph, CENTER, 300)

    assert polygon is not None
    assert max(to_local_meters(p, CENTER)[0] for p in polygon) > 150.0


@pytest.mark.unit
def test_pipeline_is_deterministic() -> None:
    network = _rectangle()
    a = asyncio.run(_service(_FakeProvider(FetchOk(network, "x"))).get_or_compute(STOP, 300))
    b = asyncio.run(_service(_FakeProvider(FetchOk(network, "y"))).get_or_compute(STOP, 300))

    assert a is not None
    assert a == b


@pytest.mark.unit
def test_invalidate_stop_forces_recompute() -> None:
    provider = _FakeProvider(FetchOk(network=_rectangle(), endpoint="fake"))
    service = _service(provider)

    async def scenario() -> None:
        await service.get_or_compute(STOP, 300)
        await service.cache_store.flush()
        assert await service.invalidate_stop(STOP.id) == 1
        assert await service.cache_store.get("karlsruhe-marktplatz:300") is None
        await service.get_or_compute(STOP, 300)

    asyncio.run(scenario())

    assert provider.calls == 2


@pytest.mark.unit
def test_clear_caches_drops_everything() -> None:
    provider = _FakeProvider(FetchOk(network=_rectangle(), endpoint="fake"))
    service = _service(provider)

    async def scenario() -> int:
        await service.get_or_compute(STOP, 300)
        await service.get_or_compute(STOP, 500)
        return await service.clear_caches()

    assert asyncio.run(scenario()) == 2
    assert service.cache_store.stats()["size"] == 0


def test_polygon_entry_is_what_the_store_keeps() -> None:
    provider = _FakeProvider(FetchOk(network=_rectangle(), endpoint="fake"))
    service = _service(provider)

    async def scenario() -> None:
        polygon = await service.get_or_compute(STOP, 300)
        entry = await service.cache_store.get("karlsruhe-marktplatz:300")
        assert isinstance(entry, PolygonEntry)
        assert entry.points == polygon

    asyncio.run(scenario())


class _GatedProvider(IFootwayDataProvider):
    """Serves a rectangle around whatever center is asked for, once released."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.centers: list[GeoPoint] = []

    async def fetch_footways(self, *, center: GeoPoint, radius_m: float) -> FetchOutcome:
        self.centers.append(center)
        await self.gate.wait()
        corners = ((0.0, 0.0), (400.0, 0.0), (400.0, 1.0), (0.0, 1.0))
        nodes = []
        for node_id, xy in enumerate(corners, start=1):
            p = from_local_meters(xy, center)
            nodes.append(OsmNode(id=node_id, lat=p.lat, lon=p.lon))
        network = FootwayNetwork(nodes=tuple(nodes), ways=(OsmWay(id=1, node_ids=(1, 2, 3, 4, 1)),))
        return FetchOk(network=network, endpoint="fake")


@pytest.mark.unit
def test_invalidated_stop_does_not_cache_a_running_computation() -> None:
    provider = _GatedProvider()
    service = WalkshedService(
        footway_provider=provider,
        cache_store=WalkshedCacheStore(now_ms=lambda: NOW_MS),
        now_ms=lambda: NOW_MS,
    )
    moved = Stop(id=STOP.id, name=STOP.name, location=GeoPoint(lat=49.0169, lon=8.4037))

    async def scenario() -> tuple:
        running = asyncio.ensure_future(service.get_or_compute(STOP, 300))
        while not provider.centers:
            await asyncio.sleep(0)

        await service.invalidate_stop(STOP.id)
        provider.gate.set()
        outdated = await running

        assert await service.cache_store.get("karlsruhe-marktplatz:300") is None
        return outdated, await service.get_or_compute(moved, 300)

    outdated, fresh = asyncio.run(scenario())

    assert provider.centers == [STOP.location, moved.location]
    assert outdated is not None and fresh is not None
    assert all(haversine_distance_m(moved.location, p) <= 300.5 for p in fresh)


@pytest.mark.unit
def test_evicted_polygons_are_recomputed() -> None:
    provider = _FakeProvider(FetchOk(network=_rectangle(), endpoint="fake"))
    store = WalkshedCacheStore(limits=CacheLimits(max_polygon_entries=1), now_ms=lambda: NOW_MS)
    service = WalkshedService(footway_provider=provider, cache_store=store, now_ms=lambda: NOW_MS)
    other = Stop(id="kronenplatz", name="Kronenplatz", location=CENTER)

    async def scenario() -> None:
        await service.get_or_compute(STOP, 300)
        await service.get_or_compute(other, 300)
        await service.get_or_compute(STOP, 300)

    asyncio.run(scenario())

    assert provider.calls == 3
    assert store.stats()["size"] == 1


@pytest.mark.unit
def test_reset_by_another_process_is_picked_up(tmp_path) -> None:
    path = tmp_path / "cache.json"
    ours_provider = _FakeProvider(FetchOk(network=_rectangle(), endpoint="fake"))
    theirs_provider = _FakeProvider(FetchOk(network=_rectangle(), endpoint="fake"))
    ours = WalkshedService(
        footway_provider=ours_provider,
        cache_store=WalkshedCacheStore(
            backends=(JsonFileWalkshedCacheBackend(path=path),), now_ms=lambda: NOW_MS
        ),
        now_ms=lambda: NOW_MS,
    )
    theirs = WalkshedService(
        footway_provider=theirs_provider,
        cache_store=WalkshedCacheStore(
            backends=(JsonFileWalkshedCacheBackend(path=path),), now_ms=lambda: NOW_MS
        ),
        now_ms=lambda: NOW_MS,
    )

    async def scenario() -> None:
        await ours.get_or_compute(STOP, 300)
        await ours.cache_store.flush()

        assert await theirs.clear_caches() == 1
        await ours.get_or_compute(STOP, 300)

    asyncio.run(scenario())

    assert ours_provider.calls == 2
    assert theirs_provider.calls == 0
