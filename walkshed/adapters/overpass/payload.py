from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from walkshed.domain.exceptions import InvalidOverpassPayload
from walkshed.domain.models import FootwayNetwork, OsmNode, OsmWay


class OverpassNodeElement(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")

    type: Literal["node"]
    id: int
    lat: float = Field(allow_inf_nan=False)
    lon: float = Field(allow_inf_nan=False)


class OverpassWayElement(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")

    type: Literal["way"]
    id: int
    nodes: list[int]


def parse_overpass_payload(payload: Any) -> FootwayNetwork:
    """Validate an Overpass JSON document.

    The document itself must be an object with an `elements` list, otherwise
    InvalidOverpassPayload is raised. Elements that are not well-formed nodes
    or ways are dropped.
    """

    if not isinstance(payload, dict):
        raise InvalidOverpassPayload("Overpass payload is not an object")
    elements = payload.get("elements")
    if not isinstance(elements, list):
        raise InvalidOverpassPayload("Overpass payload has no elements list")

    nodes: list[OsmNode] = []
    ways: list[OsmWay] = []

    for raw in elements:
        if not isinstance(raw, dict):
            continue
        kind = raw.get("type")
        try:
            if kind == "node":
                node = OverpassNodeElement.model_validate(raw)
                nodes.append(OsmNode(id=node.id, lat=node.lat, lon=node.lon))
            elif kind == "way":
                way = OverpassWayElement.model_validate(raw)
                ways.append(OsmWay(id=way.id, node_ids=tuple(way.nodes)))
        except ValidationError:
            continue

    return FootwayNetwork(nodes=tuple(nodes), ways=tuple(ways))
