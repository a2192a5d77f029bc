from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from walkshed.app.ports.output import IEndpointStatsStore
from walkshed.domain.models import EndpointStats, EndpointStatsSnapshot

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class JsonFileEndpointStatsStore(IEndpointStatsStore):
    """Keeps Overpass endpoint history in a small JSON file.

    Env vars:
      - ENDPOINT_STATS_PATH (default: data/overpass-endpoint-stats.json)
    """

    path: str | Path | None = None

    def _path(self) -> Path:
        value = (
            self.path
            or os.getenv("ENDPOINT_STATS_PATH")
            or "data/overpass-endpoint-stats.json"
        )
        return Path(value)

    def load(self) -> EndpointStatsSnapshot | None:
        path = self._path()
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as fp:
                raw = json.load(fp)
        except (OSError, ValueError) as exc:
            logger.warning(
                "Could not read endpoint stats",
                extra={"path": str(path), "error": repr(exc)},
            )
            return None

        if not isinstance(raw, dict):
            return None

        stats: dict[str, EndpointStats] = {}
        for endpoint, item in (raw.get("endpoints") or {}).items():
            if not isinstance(item, dict):
                continue
            latency = item.get("latency_ms")
            streak = item.get("failure_streak", 0)
            try:
                stats[str(endpoint)] = EndpointStats(
                    latency_ms=float(latency) if latency is not None else None,
                    failure_streak=max(0, int(streak)),
                )
            except (TypeError, ValueError):
                continue

        preferred = raw.get("preferred_endpoint")
        return EndpointStatsSnapshot(
            stats_by_endpoint=stats,
            preferred_endpoint=preferred if isinstance(preferred, str) else None,
        )

    def save(self, snapshot: EndpointStatsSnapshot) -> bool:
        path = self._path()
        document = {
            "preferred_endpoint": snapshot.preferred_endpoint,
            "endpoints": {
                endpoint: {
                    "latency_ms": s.latency_ms,
                    "failure_streak": s.failure_streak,
                }
                for endpoint, s in snapshot.stats_by_endpoint.items()
            },
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            with tmp.open("w", encoding="utf-8") as fp:
                json.dump(document, fp)
            os.replace(tmp, path)
        except OSError as exc:
            logger.warning(
                "Could not write endpoint stats",
                extra={"path": str(path), "error": repr(exc)},
            )
            return False
        return True
