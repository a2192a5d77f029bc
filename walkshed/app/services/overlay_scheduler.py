from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Iterable

from walkshed.app.ports.output import IOverlayRenderer
from walkshed.app.services.coverage_settings import CoverageSettings
from walkshed.app.services.walkshed_service import WalkshedService
from walkshed.domain.models import BoundingBox, GeoPoint, Stop, cache_key

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4
DEFAULT_DEBOUNCE_S = 0.12
DEFAULT_VIEWPORT_PADDING = 0.08


@dataclass(slots=True)
class OverlayScheduler:
    """Keeps walkshed overlays in sync with the stops visible on a map.

    Stops inside the (padded) viewport are queued and computed by at most
    `concurrency` workers. Every state change that invalidates running work
    bumps `epoch`; results from an older epoch are dropped.
    """

    service: WalkshedService
    renderer: IOverlayRenderer
    settings: CoverageSettings
    get_viewport: Callable[[], BoundingBox | None]
    concurrency: int = DEFAULT_CONCURRENCY
    debounce_s: float = DEFAULT_DEBOUNCE_S
    viewport_padding: float = DEFAULT_VIEWPORT_PADDING

    epoch: int = field(default=0, init=False)
    computations: int = field(default=0, init=False)

    _stops: dict[str, Stop] = field(default_factory=dict, init=False, repr=False)
    _rendered: dict[str, int] = field(default_factory=dict, init=False, repr=False)
    # dict used as an ordered set
    _pending: dict[str, None] = field(default_factory=dict, init=False, repr=False)
    _in_flight: set[str] = field(default_factory=set, init=False, repr=False)
    _unavailable: set[str] = field(default_factory=set, init=False, repr=False)
    _tasks: set[asyncio.Task] = field(default_factory=set, init=False, repr=False)
    _debounce: asyncio.TimerHandle | None = field(default=None, init=False, repr=False)

    # Introspection

    @property
    def pending_ids(self) -> tuple[str, ...]:
        return tuple(self._pending)

    @property
    def in_flight_ids(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    @property
    def rendered_ids(self) -> frozenset[str]:
        return frozenset(self._rendered)

    def is_known_unavailable(self, stop_id: str, radius_m: int) -> bool:
        return cache_key(stop_id, radius_m) in self._unavailable

    # Stop bookkeeping

    def set_stops(self, stops: Iterable[Stop]) -> None:
        incoming = {stop.id: stop for stop in stops}
        for stop_id in [s for s in self._stops if s not in incoming]:
            self._forget_stop(stop_id)
        for stop in incoming.values():
            previous = self._stops.get(stop.id)
            if previous is not None and previous != stop:
                self._forget_stop(stop.id)
        self._stops = incoming
        self._request_sync()

    def add_or_update_stop(self, stop: Stop) -> None:
        previous = self._stops.get(stop.id)
        self._stops[stop.id] = stop
        if previous is None or previous == stop:
            self._request_sync()
            return

        self._forget_stop(stop.id)
        if previous.location != stop.location:
            self._spawn(self._invalidate_then_sync(stop.id))
        else:
            self._request_sync()

    def remove_stop(self, stop_id: str) -> None:
        if self._stops.pop(stop_id, None) is None:
            return
        self._forget_stop(stop_id)
        self._spawn(self.service.invalidate_stop(stop_id))

    def prioritize_stop(self, stop_id: str) -> bool:
        """Move a visible stop to the front of the queue, skipping the debounce."""

        stop = self._stops.get(stop_id)
        if stop is None or not self._wants_overlay(stop, self._visible_area()):
            return False
        if stop_id in self._rendered or stop_id in self._in_flight:
            return False

        self._pending.pop(stop_id, None)
        self._pending = {stop_id: None, **self._pending}
        self._pump()
        return True

    def _forget_stop(self, stop_id: str) -> None:
        self._pending.pop(stop_id, None)
        prefix = f"{stop_id}:"
        self._unavailable = {k for k in self._unavailable if not k.startswith(prefix)}
        if self._rendered.pop(stop_id, None) is not None:
            self.renderer.remove(stop_id)

    async def _invalidate_then_sync(self, stop_id: str) -> None:
        await self.service.invalidate_stop(stop_id)
        await self.sync_now()

    # Events

    def on_viewport_changed(self) -> None:
        if self._debounce is not None:
            self._debounce.cancel()
        loop = asyncio.get_running_loop()
        self._debounce = loop.call_later(self.debounce_s, self._debounce_fired)

    def on_settings_changed(self) -> None:
        self._reset_visualisation()
        self._request_sync()

    def on_coverage_mode_changed(self) -> None:
        self._reset_visualisation()
        self._request_sync()

    def on_cache_reset(self) -> None:
        self.service.forget_in_process()
        self._unavailable.clear()
        self._reset_visualisation()
        self._request_sync()

    def _reset_visualisation(self) -> None:
        self.epoch += 1
        self._pending.clear()
        self._rendered.clear()
        self.renderer.clear()

    def _debounce_fired(self) -> None:
        self._debounce = None
        self._request_sync()

    # Sync

    def _request_sync(self) -> None:
        self._spawn(self.sync_now())

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _visible_area(self) -> BoundingBox | None:
        viewport = self.get_viewport()
        if viewport is None:
            return None
        return viewport.pad(self.viewport_padding)

    def _wants_overlay(self, stop: Stop, area: BoundingBox | None) -> bool:
        return (
            self.settings.walkshed_mode
            and area is not None
            and area.contains(stop.location)
            and not self.settings.is_disabled(stop.id)
        )

    async def sync_now(self) -> None:
        if await self.service.cache_store.check_reset_marker():
            self.service.forget_in_process()
            self._unavailable.clear()
            self._reset_visualisation()

        if not self.settings.walkshed_mode:
            self._pending.clear()
            if self._rendered:
                self._rendered.clear()
                self.renderer.clear()
            return

        area = self._visible_area()
        for stop_id in list(self._rendered):
            stop = self._stops.get(stop_id)
            if stop is None or not self._wants_overlay(stop, area):
                del self._rendered[stop_id]
                self.renderer.remove(stop_id)

        for stop_id in list(self._pending):
            stop = self._stops.get(stop_id)
            if stop is None or not self._wants_overlay(stop, area):
                del self._pending[stop_id]

        for stop in self._stops.values():
            if stop.id in self._rendered or stop.id in self._in_flight:
                continue
            if not self._wants_overlay(stop, area):
                continue
            if self.is_known_unavailable(stop.id, self.settings.radius_for(stop.type)):
                continue
            self._pending.setdefault(stop.id, None)

        self._pump()

    def _pump(self) -> None:
        while self._pending and len(self._in_flight) < self.concurrency:
            stop_id = next(iter(self._pending))
            del self._pending[stop_id]
            stop = self._stops.get(stop_id)
            if stop is None:
                continue
            self._in_flight.add(stop_id)
            self._spawn(self._compute(stop, self.epoch))

    async def _compute(self, stop: Stop, epoch: int) -> None:
        radius = self.settings.radius_for(stop.type)
        self.computations += 1
        try:
            polygon = await self.service.get_or_compute(stop, radius)
        except Exception:
            logger.exception("Walkshed computation failed", extra={"stop_id": stop.id})
        else:
            if not self._apply(stop, radius, epoch, polygon):
                # Stale result; the stop may still need an overlay.
                self._request_sync()
        finally:
            self._in_flight.discard(stop.id)
            self._pump()

    def _apply(
        self, stop: Stop, radius: int, epoch: int, polygon: tuple[GeoPoint, ...] | None
    ) -> bool:
        """Apply a finished computation; False if it was computed for outdated state."""

        if epoch != self.epoch:
            return False
        if self._stops.get(stop.id) != stop:
            return False
        if self.settings.radius_for(stop.type) != radius:
            return False
        if not self._wants_overlay(stop, self._visible_area()):
            return True

        if polygon is None:
            self._unavailable.add(cache_key(stop.id, radius))
            return True

        self.renderer.render(stop, polygon)
        self._rendered[stop.id] = radius
        return True

    async def wait_idle(self) -> None:
        """Wait until no debounce timer, sync or computation is outstanding."""

        while True:
            if self._debounce is not None:
                await asyncio.sleep(self.debounce_s)
                continue
            tasks = [t for t in self._tasks if not t.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)
