from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from walkshed.adapters.persistence.cache_entry_codec import entry_from_dict, entry_to_dict
from walkshed.app.ports.output import IWalkshedCacheBackend
from walkshed.domain.exceptions import CacheBackendError
from walkshed.domain.models import CacheEntry

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class JsonFileWalkshedCacheBackend(IWalkshedCacheBackend):
    """Flat key-value cache snapshot kept in a single JSON document.

    Layout: {"entries": {key: entry}, "reset_marker": int}. Every write
    rewrites the whole file (tmp file + os.replace).

    Env vars:
      - WALKSHED_LEGACY_CACHE_PATH (default: data/walkshed-cache.json)
    """

    path: str | Path | None = None
    name: str = "json-file"

    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    def _path(self) -> Path:
        value = (
            self.path
            or os.getenv("WALKSHED_LEGACY_CACHE_PATH")
            or "data/walkshed-cache.json"
        )
        return Path(value)

    def _read_document(self) -> dict[str, Any]:
        path = self._path()
        if not path.exists():
            return {}
        with path.open("r", encoding="utf-8") as fp:
            document = json.load(fp)
        if not isinstance(document, dict):
            raise CacheBackendError(f"{path} does not hold a JSON object")
        return document

    def _write_document(self, document: dict[str, Any]) -> None:
        path = self._path()
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as fp:
            json.dump(document, fp)
        os.replace(tmp, path)

    async def _update(self, mutate: Callable[[dict[str, Any]], Any]) -> bool:
        async with self._lock:
            try:
                document = self._read_document()
                mutate(document)
                if not document.get("entries") and not document.get("reset_marker"):
                    self._path().unlink(missing_ok=True)
                else:
                    self._write_document(document)
                return True
            except (OSError, ValueError, CacheBackendError) as exc:
                logger.warning(
                    "Legacy walkshed cache write failed",
                    extra={"path": str(self._path()), "error": repr(exc)},
                )
                return False

    async def read_all(self) -> dict[str, CacheEntry] | None:
        try:
            document = self._read_document()
        except (OSError, ValueError, CacheBackendError) as exc:
            logger.warning(
                "Legacy walkshed cache read failed",
                extra={"path": str(self._path()), "error": repr(exc)},
            )
            return None

        raw_entries = document.get("entries")
        if not isinstance(raw_entries, dict):
            return {}

        entries: dict[str, CacheEntry] = {}
        for key, raw in raw_entries.items():
            entry = entry_from_dict(raw)
            if isinstance(key, str) and key and entry is not None:
                entries[key] = entry
        return entries

    async def upsert(self, key: str, entry: CacheEntry) -> bool:
        return await self.upsert_many({key: entry})

    async def upsert_many(self, entries: Mapping[str, CacheEntry]) -> bool:
        def mutate(document: dict[str, Any]) -> None:
            stored = document.get("entries")
            if not isinstance(stored, dict):
                stored = {}
            for key, entry in entries.items():
                stored[key] = entry_to_dict(entry)
            document["entries"] = stored

        return await self._update(mutate)

    async def delete(self, keys: Iterable[str]) -> bool:
        doomed = {k for k in keys if k}
        if not doomed:
            return True

        def mutate(document: dict[str, Any]) -> None:
            stored = document.get("entries")
            if isinstance(stored, dict):
                document["entries"] = {
                    k: v for k, v in stored.items() if k not in doomed
                }

        return await self._update(mutate)

    async def clear(self) -> bool:
        return await self._update(lambda document: document.pop("entries", None))

    async def read_reset_marker(self) -> int | None:
        try:
            document = self._read_document()
        except (OSError, ValueError, CacheBackendError):
            return None
        marker = document.get("reset_marker")
        if isinstance(marker, bool) or not isinstance(marker, int):
            return 0
        return marker

    async def write_reset_marker(self, marker: int) -> bool:
        def mutate(document: dict[str, Any]) -> None:
            document["reset_marker"] = int(marker)

        return await self._update(mutate)
