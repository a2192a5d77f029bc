from __future__ import annotations

import math
from typing import Any

from walkshed.domain.models import CacheEntry, GeoPoint, PolygonEntry, UnavailableEntry


def _finite_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def _parse_points(raw: Any) -> tuple[GeoPoint, ...] | None:
    # A ring needs at least three vertices.
    if not isinstance(raw, list) or len(raw) < 3:
        return None
    points: list[GeoPoint] = []
    for item in raw:
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            return None
        lat = _finite_number(item[0])
        lon = _finite_number(item[1])
        if lat is None or lon is None:
            return None
        try:
            points.append(GeoPoint(lat=lat, lon=lon))
        except ValueError:
            return None
    return tuple(points)


def entry_to_dict(entry: CacheEntry) -> dict[str, Any]:
    if isinstance(entry, PolygonEntry):
        return {
            "kind": "polygon",
            "polygon": [[p.lat, p.lon] for p in entry.points],
            "updated_at_ms": int(entry.updated_at_ms),
        }
    return {
        "kind": "unavailable",
        "retry_after_ms": int(entry.retry_after_ms),
        "updated_at_ms": int(entry.updated_at_ms),
    }


def entry_from_dict(raw: Any) -> CacheEntry | None:
    """Decode a stored entry; None if it is malformed.

    Older snapshots stored polygons without `kind` and used camelCase
    timestamps (`updatedAt`, `retryAfter`); both spellings are accepted.
    """

    if not isinstance(raw, dict):
        return None

    updated_at = _finite_number(raw.get("updated_at_ms", raw.get("updatedAt")))
    if updated_at is None:
        return None

    points = _parse_points(raw.get("polygon"))
    if points is not None and raw.get("kind", "polygon") == "polygon":
        return PolygonEntry(points=points, updated_at_ms=int(updated_at))

    if raw.get("kind") == "unavailable":
        retry_after = _finite_number(raw.get("retry_after_ms", raw.get("retryAfter")))
        if retry_after is None:
            return None
        return UnavailableEntry(
            retry_after_ms=int(retry_after), updated_at_ms=int(updated_at)
        )

    return None
