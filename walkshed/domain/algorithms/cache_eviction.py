from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from walkshed.domain.models import CacheEntry, PolygonEntry, UnavailableEntry

DAY_MS = 24 * 60 * 60 * 1000


@dataclass(frozen=True, slots=True)
class CacheLimits:
    max_age_ms: int = 30 * DAY_MS
    max_polygon_entries: int = 400
    max_unavailable_entries: int = 200


def prune_entries(
    entries: Mapping[str, CacheEntry], *, now_ms: int, limits: CacheLimits
) -> tuple[dict[str, CacheEntry], list[str]]:
    """Apply age, expiry and capacity rules.

    Returns the surviving entries and the keys that were dropped. Polygons and
    unavailable markers are capped separately (least recently updated go
    first); markers only get whatever room the polygons leave.
    """

    polygons: list[tuple[str, PolygonEntry]] = []
    unavailable: list[tuple[str, UnavailableEntry]] = []
    dropped: list[str] = []
    order = {key: i for i, key in enumerate(entries)}

    for key, entry in entries.items():
        if now_ms - entry.updated_at_ms > limits.max_age_ms:
            dropped.append(key)
        elif isinstance(entry, UnavailableEntry):
            if entry.is_expired(now_ms):
                dropped.append(key)
            else:
                unavailable.append((key, entry))
        else:
            polygons.append((key, entry))

    # Newest first; on equal timestamps the later insertion wins.
    polygons.sort(
        key=lambda item: (item[1].updated_at_ms, order[item[0]]), reverse=True
    )
    unavailable.sort(
        key=lambda item: (item[1].updated_at_ms, order[item[0]]), reverse=True
    )

    polygon_cap = max(0, limits.max_polygon_entries)
    kept_polygons = polygons[:polygon_cap]
    dropped.extend(key for key, _ in polygons[polygon_cap:])

    unavailable_cap = max(
        0, min(limits.max_unavailable_entries, polygon_cap - len(kept_polygons))
    )
    kept_unavailable = unavailable[:unavailable_cap]
    dropped.extend(key for key, _ in unavailable[unavailable_cap:])

    kept_keys = {key for key, _ in kept_polygons} | {key for key, _ in kept_unavailable}
    kept = {key: entry for key, entry in entries.items() if key in kept_keys}
    return kept, dropped
