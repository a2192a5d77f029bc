from __future__ import annotations

from typing import Sequence

from walkshed.domain.models import EndpointStats, EndpointStatsSnapshot

DEFAULT_LATENCY_MS = 1500.0
FAILURE_PENALTY_MS = 4000.0
PREFERRED_BONUS_MS = 750.0
LATENCY_SMOOTHING = 0.3
MAX_FAILURE_STREAK = 5


def endpoint_score(
    stats: EndpointStats | None, *, is_preferred: bool = False
) -> float:
    """Lower is better."""

    stats = stats or EndpointStats()
    latency = stats.latency_ms if stats.latency_ms is not None else DEFAULT_LATENCY_MS
    score = latency + stats.failure_streak * FAILURE_PENALTY_MS
    if is_preferred:
        score -= PREFERRED_BONUS_MS
    return score


def order_endpoints(
    endpoints: Sequence[str], snapshot: EndpointStatsSnapshot
) -> list[str]:
    # sorted() is stable: equal scores keep the configured order.
    return sorted(
        endpoints,
        key=lambda e: endpoint_score(
            snapshot.stats_by_endpoint.get(e),
            is_preferred=e == snapshot.preferred_endpoint,
        ),
    )


def record_success(
    snapshot: EndpointStatsSnapshot, endpoint: str, latency_ms: float
) -> EndpointStatsSnapshot:
    previous = snapshot.stats_by_endpoint.get(endpoint) or EndpointStats()
    if previous.latency_ms is None:
        smoothed = float(latency_ms)
    else:
        smoothed = (
            LATENCY_SMOOTHING * float(latency_ms)
            + (1.0 - LATENCY_SMOOTHING) * previous.latency_ms
        )

    stats = dict(snapshot.stats_by_endpoint)
    stats[endpoint] = EndpointStats(latency_ms=smoothed, failure_streak=0)
    return EndpointStatsSnapshot(stats_by_endpoint=stats, preferred_endpoint=endpoint)


def record_failure(
    snapshot: EndpointStatsSnapshot, endpoint: str
) -> EndpointStatsSnapshot:
    previous = snapshot.stats_by_endpoint.get(endpoint) or EndpointStats()
    stats = dict(snapshot.stats_by_endpoint)
    stats[endpoint] = EndpointStats(
        latency_ms=previous.latency_ms,
        failure_streak=min(MAX_FAILURE_STREAK, previous.failure_streak + 1),
    )
    return EndpointStatsSnapshot(
        stats_by_endpoint=stats, preferred_endpoint=snapshot.preferred_endpoint
    )
