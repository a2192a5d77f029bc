from __future__ import annotations

import httpx
import pytest

from walkshed.adapters.api.dependencies import get_coverage_settings, get_walkshed_service
from walkshed.app.ports.output import IFootwayDataProvider
from walkshed.app.services.coverage_settings import CoverageSettings
from walkshed.app.services.walkshed_cache import WalkshedCacheStore
from walkshed.app.services.walkshed_service import WalkshedService
from walkshed.domain.algorithms.geo_utils import from_local_meters
from walkshed.domain.models import (
    AllEndpointsFailed,
    FetchOk,
    FetchOutcome,
    FootwayNetwork,
    GeoPoint,
    OsmNode,
    OsmWay,
    StopType,
)
from walkshed.main import app

CENTER = GeoPoint(lat=49.0069, lon=8.4037)


class _Provider(IFootwayDataProvider):
    def __init__(self, outcome: FetchOutcome) -> None:
        self.outcome = outcome
        self.radii: list[float] = []

    async def fetch_footways(self, *, center: GeoPoint, radius_m: float) -> FetchOutcome:
        self.radii.append(radius_m)
        return self.outcome


def _square_network() -> FootwayNetwork:
    corners = [(0.0, 0.0), (200.0, 0.0), (200.0, 200.0), (0.0, 200.0)]
    nodes = []
    for i, xy in enumerate(corners, start=1):
        p = from_local_meters(xy, CENTER)
        nodes.append(OsmNode(id=i, lat=p.lat, lon=p.lon))
    return FootwayNetwork(nodes=tuple(nodes), ways=(OsmWay(id=1, node_ids=(1, 2, 3, 4, 1)),))


def _install(outcome: FetchOutcome, settings: CoverageSettings | None = None) -> WalkshedService:
    service = WalkshedService(footway_provider=_Provider(outcome), cache_store=WalkshedCacheStore())
    app.dependency_overrides[get_walkshed_service] = lambda: service
    app.dependency_overrides[get_coverage_settings] = lambda: settings or CoverageSettings()
    return service


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.fixture(autouse=True)
def _clear_overrides():
    yield
    app.dependency_overrides.clear()


@pytest.mark.unit
@pytest.mark.anyio
async def test_health() -> None:
    async with _client() as client:
        resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.unit
@pytest.mark.anyio
async def test_post_walkshed_returns_polygon() -> None:
    _install(FetchOk(network=_square_network(), endpoint="fake"))

    async with _client() as client:
        resp = await client.post(
            "/walksheds",
            json={
                "stop": {"id": "s1", "name": "Marktplatz", "lat": 49.0069, "lon": 8.4037},
                "distance_m": 150,
            },
        )

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["stop_id"] == "s1"
    assert payload["distance_m"] == 150
    assert len(payload["polygon"]) >= 3
    assert set(payload["polygon"][0]) == {"lat", "lon"}


@pytest.mark.unit
@pytest.mark.anyio
async def test_post_walkshed_uses_radius_for_stop_type() -> None:
    settings = CoverageSettings()
    settings.set_radius(StopType.TRAIN, 650)
    service = _install(AllEndpointsFailed(endpoints=("a",)), settings)

    async with _client() as client:
        resp = await client.post(
            "/walksheds",
            json={"stop": {"id": "hbf", "lat": 48.9935, "lon": 8.4012, "type": "train"}},
        )

    assert resp.status_code == 200
    assert resp.json() == {"stop_id": "hbf", "distance_m": 650, "polygon": None}
    assert service.footway_provider.radii == [650]


@pytest.mark.unit
@pytest.mark.anyio
async def test_post_walkshed_validates_coordinates() -> None:
    _install(AllEndpointsFailed())

    async with _client() as client:
        resp = await client.post("/walksheds", json={"stop": {"id": "x", "lat": 120.0, "lon": 8.0}})

    assert resp.status_code == 422


@pytest.mark.unit
@pytest.mark.anyio
async def test_cache_stats_and_invalidation() -> None:
    _install(FetchOk(network=_square_network(), endpoint="fake"))
    stop = {"id": "s1", "name": "Marktplatz", "lat": 49.0069, "lon": 8.4037}

    async with _client() as client:
        await client.post("/walksheds", json={"stop": stop, "distance_m": 150})
        await client.post("/walksheds", json={"stop": stop, "distance_m": 300})

        stats = (await client.get("/walksheds/cache")).json()
        assert stats == {
            "size": 2,
            "polygon_entries": 2,
            "unavailable_entries": 0,
            "backend": "memory",
        }

        removed = await client.delete("/walksheds/cache/s1")
        assert removed.json() == {"removed": 2}

        await client.post("/walksheds", json={"stop": stop, "distance_m": 150})
        cleared = await client.delete("/walksheds/cache")
        assert cleared.json() == {"removed": 1}

        stats = (await client.get("/walksheds/cache")).json()
        assert stats["size"] == 0


@pytest.mark.unit
@pytest.mark.anyio
async def test_unhandled_errors_are_json(monkeypatch: pytest.MonkeyPatch) -> None:
    class _Broken:
        async def get_or_compute(self, stop, distance_m):
            raise KeyError("secret")

    app.dependency_overrides[get_walkshed_service] = lambda: _Broken()
    app.dependency_overrides[get_coverage_settings] = lambda: CoverageSettings()

    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/walksheds", json={"stop": {"id": "x", "lat": 49.0, "lon": 8.0}})
        assert resp.status_code == 500
        assert resp.json() == {"detail": "Internal Server Error"}

        monkeypatch.setenv("WALKSHED_REVEAL_ERRORS", "true")
        resp = await client.post("/walksheds", json={"stop": {"id": "x", "lat": 49.0, "lon": 8.0}})
        assert resp.json() == {"detail": "'secret'"}
