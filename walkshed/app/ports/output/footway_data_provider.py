from __future__ import annotations

from abc import ABC, abstractmethod

from walkshed.domain.models import FetchOutcome, GeoPoint


class IFootwayDataProvider(ABC):
    """Port for fetching raw pedestrian path data around a point."""

    @abstractmethod
    async def fetch_footways(self, *, center: GeoPoint, radius_m: float) -> FetchOutcome:
        """Return FetchOk or AllEndpointsFailed; must not raise."""
