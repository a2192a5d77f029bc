from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from walkshed.domain.models import StopType

DEFAULT_RADIUS_M = 300
MIN_RADIUS_M = 50
MAX_RADIUS_M = 5000


class CoverageShape(str, Enum):
    CIRCLE = "circle"
    WALKSHED = "walkshed"

    @classmethod
    def parse(cls, value: Any) -> "CoverageShape":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.WALKSHED


def normalize_radius(value: Any, default: int = DEFAULT_RADIUS_M) -> int:
    try:
        radius = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(radius):
        return default
    return int(round(min(MAX_RADIUS_M, max(MIN_RADIUS_M, radius))))


@dataclass(slots=True)
class CoverageSettings:
    """User-facing coverage options: radius per stop type, shape, opt-outs."""

    default_radius_m: int = DEFAULT_RADIUS_M
    shape: CoverageShape = CoverageShape.WALKSHED
    enabled: bool = True

    _radius_by_type: dict[StopType, int] = field(default_factory=dict, init=False, repr=False)
    _disabled_stop_ids: set[str] = field(default_factory=set, init=False, repr=False)

    def __post_init__(self) -> None:
        self.default_radius_m = normalize_radius(self.default_radius_m)
        self.shape = CoverageShape.parse(self.shape)

    def radius_for(self, stop_type: StopType) -> int:
        return self._radius_by_type.get(stop_type, self.default_radius_m)

    def set_radius(self, stop_type: StopType, value: Any) -> int:
        radius = normalize_radius(value, self.default_radius_m)
        self._radius_by_type[stop_type] = radius
        return radius

    def set_shape(self, value: Any) -> CoverageShape:
        self.shape = CoverageShape.parse(value)
        return self.shape

    @property
    def walkshed_mode(self) -> bool:
        return self.enabled and self.shape is CoverageShape.WALKSHED

    @property
    def disabled_stop_ids(self) -> frozenset[str]:
        return frozenset(self._disabled_stop_ids)

    def is_disabled(self, stop_id: str) -> bool:
        return stop_id in self._disabled_stop_ids

    def set_disabled(self, stop_id: str, disabled: bool) -> None:
        stop_id = stop_id.strip()
        if not stop_id:
            return
        if disabled:
            self._disabled_stop_ids.add(stop_id)
        else:
            self._disabled_stop_ids.discard(stop_id)

    def replace_disabled(self, stop_ids: Iterable[str]) -> None:
        self._disabled_stop_ids = {s.strip() for s in stop_ids if s and s.strip()}
