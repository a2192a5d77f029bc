from __future__ import annotations

from walkshed.domain.algorithms.geo_utils import bbox_for_stop
from walkshed.domain.constants import QUERY_PADDING_M
from walkshed.domain.models import GeoPoint

# Highway categories a pedestrian cannot (or should not) use.
WALKABLE_HIGHWAY_EXCLUDE_REGEX = (
    "motorway|motorway_link|trunk|trunk_link|construction|proposed|"
    "bus_guideway|raceway|bridleway|corridor|escape"
)


def footway_query(
    center: GeoPoint, radius_m: float, *, padding_m: float = QUERY_PADDING_M
) -> str:
    """Overpass QL for all walkable ways (and their nodes) around a point."""

    bbox = bbox_for_stop(center, radius_m, padding_m=padding_m)
    area = f"{bbox.south},{bbox.west},{bbox.north},{bbox.east}"

    return f"""
[out:json][timeout:25];
(
  way["highway"]
    ["highway"!~"{WALKABLE_HIGHWAY_EXCLUDE_REGEX}"]
    ["area"!="yes"]
    ["indoor"!="yes"]
    ["access"!~"private|no"]
    ["foot"!~"no"]
    ({area});
);
(._;>;);
out body;
"""
