"""
Geospatial radius filter.

Builds the proximity predicate for item discovery. The radius is given in
kilometers at the API boundary and converted exactly to meters, the unit
MongoDB uses for ``$maxDistance`` on GeoJSON points.

Example fetch predicate (lat=40.0, lng=-3.0, distance=5):
    {
        "coordinates.coordinates": {
            "$near": {
                "$geometry": {"type": "Point", "coordinates": [-3.0, 40.0]},
                "$maxDistance": 5000.0,
            }
        }
    }

``$near`` orders results nearest-first, but count_documents rejects it, so
the count uses the equivalent ``$geoWithin``/``$centerSphere`` form.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from .capabilities import CollectionCapabilities
from .params import Coordinates

METERS_PER_KM = 1000
# Equatorial radius MongoDB uses to turn distances into radians
EARTH_RADIUS_METERS = 6378100.0
# Mean radius used for reported distances
EARTH_RADIUS_KM = 6371.0


def km_to_meters(radius_km: float) -> float:
    """Convert kilometers to meters."""
    return radius_km * METERS_PER_KM


@dataclass(frozen=True)
class ProximityPredicate:
    """Points of ``field`` within ``max_distance_m`` of ``center``."""

    field: str
    center: Coordinates
    max_distance_m: float

    @property
    def radius_km(self) -> float:
        return self.max_distance_m / METERS_PER_KM

    def near_clause(self) -> dict[str, Any]:
        return {
            self.field: {
                "$near": {
                    "$geometry": {"type": "Point", "coordinates": self.center.to_geojson()},
                    "$maxDistance": self.max_distance_m,
                }
            }
        }

    def within_clause(self) -> dict[str, Any]:
        radians = self.max_distance_m / EARTH_RADIUS_METERS
        return {
            self.field: {
                "$geoWithin": {"$centerSphere": [self.center.to_geojson(), radians]}
            }
        }


def build_proximity_predicate(
    coordinates: Coordinates | None,
    radius_km: float,
    capabilities: CollectionCapabilities,
) -> ProximityPredicate | None:
    """
    Build the proximity predicate, or ``None`` when it does not apply.

    No coordinates, or a collection without a geo index, is a silent no-op:
    the search proceeds without geo-filtering.
    """
    if coordinates is None or not capabilities.has_geo_index:
        return None
    return ProximityPredicate(
        field=capabilities.geo_field,
        center=coordinates,
        max_distance_m=km_to_meters(radius_km),
    )


def geo_enabled_clause(capabilities: CollectionCapabilities) -> dict[str, Any] | None:
    """Restrict proximity matches to documents with geolocation switched on."""
    if not capabilities.geo_enabled_field:
        return None
    return {capabilities.geo_enabled_field: True}


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance between two points in kilometers."""
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def _point_of(doc: dict[str, Any], field: str) -> Coordinates | None:
    node: Any = doc
    for part in field.split("."):
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    if isinstance(node, (list, tuple)) and len(node) == 2:
        lng, lat = node
        return Coordinates(lat=float(lat), lng=float(lng))
    return None


def annotate_distances(
    docs: list[dict[str, Any]],
    proximity: ProximityPredicate,
) -> list[dict[str, Any]]:
    """Add ``distance`` (km, 2 decimals) from the search center to each document."""
    for doc in docs:
        point = _point_of(doc, proximity.field)
        if point is not None:
            doc["distance"] = round(haversine_km(proximity.center, point), 2)
    return docs
