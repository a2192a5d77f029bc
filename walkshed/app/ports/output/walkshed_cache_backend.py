from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Mapping

from walkshed.domain.models import CacheEntry


class IWalkshedCacheBackend(ABC):
    """Durable storage for walkshed cache entries.

    Implementations report failure through their return values (None/False)
    instead of raising.
    """

    name: str

    @abstractmethod
    async def read_all(self) -> dict[str, CacheEntry] | None:
        """Return every stored entry, or None if the backend is unavailable."""

    @abstractmethod
    async def upsert(self, key: str, entry: CacheEntry) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def upsert_many(self, entries: Mapping[str, CacheEntry]) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, keys: Iterable[str]) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def clear(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def read_reset_marker(self) -> int | None:
        """Return the stored reset marker (0 if never set), None if unavailable."""

    @abstractmethod
    async def write_reset_marker(self, marker: int) -> bool:
        raise NotImplementedError
