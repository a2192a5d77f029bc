from __future__ import annotations

from typing import Sequence

from walkshed.domain.constants import MAX_SEED_DISTANCE_DELTA_M
from walkshed.domain.models import SeedMatch


def select_preferred_seeds(
    candidates: Sequence[SeedMatch], *, max_delta_m: float = MAX_SEED_DISTANCE_DELTA_M
) -> list[SeedMatch]:
    """Keep candidates close to the nearest one.

    A node that is only slightly farther than the nearest is likely on the
    same path; one much farther may sit on a separate, unconnected component.
    Expects candidates sorted by distance.
    """

    if not candidates:
        return []
    limit = candidates[0].distance_m + max_delta_m
    return [c for c in candidates if c.distance_m <= limit]
