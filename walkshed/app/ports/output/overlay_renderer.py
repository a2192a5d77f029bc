from __future__ import annotations

from abc import ABC, abstractmethod

from walkshed.domain.models import GeoPoint, Stop


class IOverlayRenderer(ABC):
    """Port towards whatever draws walkshed polygons on a map."""

    @abstractmethod
    def render(self, stop: Stop, polygon: tuple[GeoPoint, ...]) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove(self, stop_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        raise NotImplementedError
