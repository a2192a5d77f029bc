from __future__ import annotations

from abc import ABC, abstractmethod

from walkshed.domain.models import EndpointStatsSnapshot


class IEndpointStatsStore(ABC):
    """Port for persisting endpoint latency/failure history across sessions."""

    @abstractmethod
    def load(self) -> EndpointStatsSnapshot | None:
        raise NotImplementedError

    @abstractmethod
    def save(self, snapshot: EndpointStatsSnapshot) -> bool:
        raise NotImplementedError
