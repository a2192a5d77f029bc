from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field

import httpx

from walkshed.adapters.overpass.payload import parse_overpass_payload
from walkshed.adapters.overpass.query import footway_query
from walkshed.app.ports.output import IEndpointStatsStore, IFootwayDataProvider
from walkshed.domain.algorithms.endpoint_ranking import (
    order_endpoints,
    record_failure,
    record_success,
)
from walkshed.domain.constants import QUERY_PADDING_M
from walkshed.domain.exceptions import InvalidOverpassPayload
from walkshed.domain.models import (
    AllEndpointsFailed,
    EndpointStatsSnapshot,
    FetchOk,
    FetchOutcome,
    FootwayNetwork,
    GeoPoint,
)

logger = logging.getLogger(__name__)

DEFAULT_OVERPASS_ENDPOINTS: tuple[str, ...] = (
    "https://overpass-api.de/api/interpreter",
    "https://maps.mail.ru/osm/tools/overpass/api/interpreter",
    "https://overpass.kumi.systems/api/interpreter",
    "https://overpass.private.coffee/api/interpreter",
    "https://lz4.overpass-api.de/api/interpreter",
)


@dataclass(slots=True)
class OverpassFootwayProvider(IFootwayDataProvider):
    """Fetches walkable ways from a rotating set of Overpass mirrors.

    Endpoints are tried fastest-first according to their latency and failure
    history; the last successful endpoint gets a small bonus.

    Env vars:
      - OVERPASS_ENDPOINTS: comma-separated interpreter URLs
      - OVERPASS_TIMEOUT_S: per-endpoint request timeout (default 18)
    """

    endpoints: tuple[str, ...] | None = None
    timeout_s: float = 18.0
    stats_store: IEndpointStatsStore | None = None
    transport: httpx.AsyncBaseTransport | None = None
    query_padding_m: float = QUERY_PADDING_M

    _snapshot: EndpointStatsSnapshot | None = field(
        default=None, init=False, repr=False
    )

    def __post_init__(self) -> None:
        if self.endpoints is None:
            raw = (os.getenv("OVERPASS_ENDPOINTS") or "").strip()
            configured = tuple(p.strip() for p in raw.split(",") if p.strip())
            self.endpoints = configured or DEFAULT_OVERPASS_ENDPOINTS
        if os.getenv("OVERPASS_TIMEOUT_S"):
            self.timeout_s = float(os.environ["OVERPASS_TIMEOUT_S"])

    @property
    def snapshot(self) -> EndpointStatsSnapshot:
        if self._snapshot is None:
            loaded = self.stats_store.load() if self.stats_store else None
            self._snapshot = loaded or EndpointStatsSnapshot(stats_by_endpoint={})
        return self._snapshot

    async def _load_snapshot(self) -> None:
        if self._snapshot is None and self.stats_store is not None:
            loaded = await asyncio.to_thread(self.stats_store.load)
            self._snapshot = loaded or EndpointStatsSnapshot(stats_by_endpoint={})

    def ordered_endpoints(self) -> list[str]:
        return order_endpoints(self.endpoints or (), self.snapshot)

    async def fetch_footways(self, *, center: GeoPoint, radius_m: float) -> FetchOutcome:
        query = footway_query(center, radius_m, padding_m=self.query_padding_m)
        failed: list[str] = []
        await self._load_snapshot()

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_s, transport=self.transport
            ) as client:
                for endpoint in self.ordered_endpoints():
                    started = time.monotonic()
                    try:
                        network = await self._fetch_from_endpoint(
                            client, endpoint, query
                        )
                    except (
                        httpx.HTTPError,
                        httpx.InvalidURL,
                        ValueError,
                        InvalidOverpassPayload,
                    ) as exc:
                        self._snapshot = record_failure(self.snapshot, endpoint)
                        failed.append(endpoint)
                        logger.warning(
                            "Overpass endpoint failed",
                            extra={"endpoint": endpoint, "error": repr(exc)},
                        )
                        continue

                    latency_ms = (time.monotonic() - started) * 1000.0
                    self._snapshot = record_success(self.snapshot, endpoint, latency_ms)
                    logger.info(
                        "Overpass endpoint succeeded",
                        extra={"endpoint": endpoint, "latency_ms": round(latency_ms)},
                    )
                    return FetchOk(network=network, endpoint=endpoint)
        finally:
            await self._persist_stats()

        return AllEndpointsFailed(endpoints=tuple(failed))

    async def _fetch_from_endpoint(
        self, client: httpx.AsyncClient, endpoint: str, query: str
    ) -> FootwayNetwork:
        resp = await client.post(
            endpoint,
            data={"data": query},
            headers={"Accept": "application/json"},
        )
        resp.raise_for_status()
        return parse_overpass_payload(resp.json())

    async def _persist_stats(self) -> None:
        if self.stats_store is None or self._snapshot is None:
            return
        if not await asyncio.to_thread(self.stats_store.save, self._snapshot):
            logger.warning("Could not persist Overpass endpoint stats")
