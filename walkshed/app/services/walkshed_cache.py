from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

from walkshed.app.ports.output import IWalkshedCacheBackend
from walkshed.domain.algorithms.cache_eviction import CacheLimits, prune_entries
from walkshed.domain.models import (
    CacheEntry,
    GeoPoint,
    PolygonEntry,
    UnavailableEntry,
)

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class WalkshedCacheStore:
    """Two-tier cache of walkshed polygons and "unavailable" markers.

    Reads are served from an in-memory snapshot loaded once from the first
    backend that answers (backends are ordered, primary first). Entries found
    in lower-priority backends are migrated and then discarded there. Writes
    update memory immediately and are persisted in the background; if the
    active backend fails, the next one takes over, and with none left the
    cache keeps working in memory only.
    """

    backends: Sequence[IWalkshedCacheBackend] = ()
    limits: CacheLimits = field(default_factory=CacheLimits)
    now_ms: Callable[[], int] = _now_ms

    _entries: dict[str, CacheEntry] | None = field(default=None, init=False, repr=False)
    _loading: asyncio.Task | None = field(default=None, init=False, repr=False)
    _active_index: int | None = field(default=None, init=False, repr=False)
    _seen_marker: int = field(default=0, init=False, repr=False)
    _pending: set[asyncio.Task] = field(default_factory=set, init=False, repr=False)

    # Loading

    async def _ensure_loaded(self) -> dict[str, CacheEntry]:
        if self._entries is not None:
            return self._entries
        if self._loading is None:
            self._loading = asyncio.ensure_future(self._load())
        return await self._loading

    async def _load(self) -> dict[str, CacheEntry]:
        for index, backend in enumerate(self.backends):
            entries = await backend.read_all()
            if entries is None:
                continue

            self._active_index = index
            await self._migrate_lower_backends(index, entries)
            self._seen_marker = await backend.read_reset_marker() or 0

            kept, dropped = prune_entries(entries, now_ms=self.now_ms(), limits=self.limits)
            if dropped:
                self._spawn(self._persist_delete(dropped))
            self._entries = kept
            return kept

        if self.backends:
            logger.warning("No walkshed cache backend available; caching in memory only")
        self._active_index = None
        self._entries = {}
        return self._entries

    async def _migrate_lower_backends(
        self, index: int, entries: dict[str, CacheEntry]
    ) -> None:
        active = self.backends[index]
        for legacy in self.backends[index + 1 :]:
            snapshot = await legacy.read_all()
            if not snapshot:
                continue

            newer = {
                key: entry
                for key, entry in snapshot.items()
                if key not in entries or entries[key].updated_at_ms < entry.updated_at_ms
            }
            if newer:
                entries.update(newer)
                await active.upsert_many(newer)
                logger.info(
                    "Migrated walkshed cache entries",
                    extra={"from": legacy.name, "to": active.name, "count": len(newer)},
                )
            await legacy.clear()

    # Background persistence

    def _spawn(self, coro: Any) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait for all background writes scheduled so far."""

        while True:
            pending = [t for t in self._pending if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def _persist_upsert(self, key: str, entry: CacheEntry, dropped: list[str]) -> None:
        start = self._active_index
        if start is None:
            return

        for index in range(start, len(self.backends)):
            backend = self.backends[index]
            if index == start:
                ok = await backend.upsert(key, entry)
            else:
                # A fallback backend gets the whole snapshot, not just this entry.
                ok = await backend.upsert_many(dict(self._entries or {}))
            if ok:
                if index != start:
                    logger.warning(
                        "Walkshed cache falling back to another backend",
                        extra={"backend": backend.name},
                    )
                self._active_index = index
                if dropped:
                    await backend.delete(dropped)
                return

        logger.warning("Walkshed cache persistence failed; caching in memory only")
        self._active_index = None

    async def _persist_delete(self, keys: list[str]) -> None:
        if self._active_index is None:
            return
        await self.backends[self._active_index].delete(keys)

    # Public API

    async def load(self) -> None:
        await self._ensure_loaded()

    async def get(self, key: str) -> CacheEntry | None:
        entries = await self._ensure_loaded()
        entry = entries.get(key)
        if entry is None:
            return None

        now = self.now_ms()
        expired = now - entry.updated_at_ms > self.limits.max_age_ms or (
            isinstance(entry, UnavailableEntry) and entry.is_expired(now)
        )
        if expired:
            entries.pop(key, None)
            return None
        return entry

    async def set_polygon(self, key: str, points: Iterable[GeoPoint]) -> PolygonEntry:
        entry = PolygonEntry(points=tuple(points), updated_at_ms=self.now_ms())
        await self._put(key, entry)
        return entry

    async def set_unavailable(self, key: str, retry_after_ms: int) -> UnavailableEntry:
        entry = UnavailableEntry(
            retry_after_ms=int(retry_after_ms), updated_at_ms=self.now_ms()
        )
        await self._put(key, entry)
        return entry

    async def _put(self, key: str, entry: CacheEntry) -> None:
        entries = await self._ensure_loaded()
        entries.pop(key, None)
        entries[key] = entry

        kept, dropped = prune_entries(entries, now_ms=self.now_ms(), limits=self.limits)
        self._entries = kept
        if key in kept:
            self._spawn(self._persist_upsert(key, entry, dropped))
        elif dropped:
            self._spawn(self._persist_delete(dropped))

    async def delete_for_stop(self, stop_id: str) -> int:
        entries = await self._ensure_loaded()
        prefix = f"{stop_id}:"
        doomed = [key for key in entries if key.startswith(prefix)]
        for key in doomed:
            del entries[key]
        if doomed:
            self._spawn(self._persist_delete(doomed))
        return len(doomed)

    async def clear(self) -> int:
        """Drop everything and bump the reset marker for other processes."""

        entries = await self._ensure_loaded()
        removed = len(entries)
        self._entries = {}
        await self.flush()

        marker = max(self.now_ms(), self._seen_marker + 1)
        self._seen_marker = marker
        for backend in self.backends:
            await backend.clear()
            await backend.write_reset_marker(marker)

        logger.info("Walkshed cache cleared", extra={"removed": removed, "marker": marker})
        return removed

    async def check_reset_marker(self) -> bool:
        """Return True (and drop the memory snapshot) if another process reset the cache."""

        if self._entries is None or self._active_index is None:
            return False

        marker = await self.backends[self._active_index].read_reset_marker()
        if marker is None or marker == self._seen_marker:
            return False

        logger.info(
            "Walkshed cache reset detected",
            extra={"marker": marker, "previous": self._seen_marker},
        )
        self._entries = None
        self._loading = None
        self._seen_marker = marker
        return True

    @property
    def backend_name(self) -> str:
        if self._active_index is None:
            return "memory"
        return self.backends[self._active_index].name

    def stats(self) -> Mapping[str, Any]:
        entries = self._entries or {}
        polygons = sum(1 for e in entries.values() if isinstance(e, PolygonEntry))
        return {
            "size": len(entries),
            "polygon_entries": polygons,
            "unavailable_entries": len(entries) - polygons,
            "backend": self.backend_name,
        }
