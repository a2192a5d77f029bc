from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .geo import GeoPoint


class StopType(str, Enum):
    TRAM = "tram"
    TRAIN = "train"
    BUS = "bus"


@dataclass(frozen=True, slots=True)
class Stop:
    id: str
    name: str
    location: GeoPoint
    type: StopType = StopType.BUS
    is_custom: bool = False
