"""
Parse-or-default coercion of raw request parameters.

Query strings arrive as untyped strings (or lists of strings when a key is
repeated). Every helper here returns a typed value or the supplied default;
none of them raise. Invalid input is normalized, never reported.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

# Largest skip or limit a BSON int64 can carry
MAX_BSON_INT = 2**63 - 1


class SortKey(str, Enum):
    """Symbolic sort keys accepted by item search."""

    RECENT = "recent"
    OLDEST = "oldest"
    AZ = "az"
    ZA = "za"
    NEAREST = "nearest"
    RELEVANCE = "relevance"

    @classmethod
    def parse(cls, value: Any) -> SortKey:
        """Map raw input to a SortKey, falling back to RECENT."""
        raw = _first(value)
        if isinstance(raw, str):
            try:
                return cls(raw.strip().lower())
            except ValueError:
                pass
        return cls.RECENT


@dataclass(frozen=True)
class Coordinates:
    """A WGS84 point. GeoJSON stores it as ``[lng, lat]``."""

    lat: float
    lng: float

    def to_geojson(self) -> list[float]:
        return [self.lng, self.lat]


@dataclass(frozen=True)
class SearchRequest:
    """Typed, defaulted view of an item search query string."""

    free_text: str | None = None
    category: str | None = None
    condition: str | None = None
    location_text: str | None = None
    coordinates: Coordinates | None = None
    radius_km: float = 10.0
    sort_key: SortKey = SortKey.RECENT
    page: int = 1
    page_size: int = 12


@dataclass(frozen=True)
class ListingRequest:
    """Reserved parameters of a generic listing; filters are compiled separately."""

    select: list[str] | None = None
    sort: str | None = None
    page: int = 1
    page_size: int = 25


def _first(value: Any) -> Any:
    """Repeated query keys arrive as lists; the first occurrence wins."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def coerce_text(value: Any) -> str | None:
    """Trim a string parameter; empty or whitespace-only means absent."""
    raw = _first(value)
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def coerce_positive_int(value: Any, default: int, maximum: int | None = None) -> int:
    """
    Parse a positive integer or return ``default``.

    Accepts ints, integral floats and numeric strings ("3", " 3 ", "3.0").
    Zero, negatives, NaN and anything unparsable yield ``default``. When
    ``maximum`` is given the result is clamped to it.
    """
    raw = _first(value)
    if raw is None or isinstance(raw, bool):
        return default

    number: float
    try:
        number = float(str(raw).strip())
    except (TypeError, ValueError):
        return default

    if not math.isfinite(number) or number < 1:
        return default

    result = int(number)
    if maximum is not None:
        result = min(result, maximum)
    return result


def coerce_positive_float(value: Any, default: float) -> float:
    """Parse a finite float greater than zero or return ``default``."""
    raw = _first(value)
    if raw is None or isinstance(raw, bool):
        return default
    try:
        number = float(str(raw).strip())
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number) or number <= 0:
        return default
    return number


def _coerce_float(value: Any) -> float | None:
    raw = _first(value)
    if raw is None or isinstance(raw, bool):
        return None
    try:
        number = float(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def max_page_for(page_size: int) -> int:
    """Highest page whose skip, ``(page - 1) * page_size``, still fits in MAX_BSON_INT."""
    return MAX_BSON_INT // page_size + 1


def parse_coordinates(lat: Any, lng: Any) -> Coordinates | None:
    """
    Build Coordinates from a lat/lng pair, both-or-neither.

    A missing half, a non-numeric value or a value outside the valid range
    (|lat| <= 90, |lng| <= 180) means no coordinates at all.
    """
    parsed_lat = _coerce_float(lat)
    parsed_lng = _coerce_float(lng)
    if parsed_lat is None or parsed_lng is None:
        return None
    if not -90 <= parsed_lat <= 90 or not -180 <= parsed_lng <= 180:
        return None
    return Coordinates(lat=parsed_lat, lng=parsed_lng)


def parse_search_request(
    params: Mapping[str, Any],
    default_page_size: int = 12,
    default_radius_km: float = 10.0,
    max_page_size: int | None = None,
) -> SearchRequest:
    """
    Parse item search query parameters.

    Recognized keys: ``q``, ``category``, ``condition``, ``location``,
    ``lat``, ``lng``, ``distance`` (km), ``sort``, ``page``, ``limit``.
    """
    page_size = coerce_positive_int(params.get("limit"), default_page_size, max_page_size or MAX_BSON_INT)
    return SearchRequest(
        free_text=coerce_text(params.get("q")),
        category=coerce_text(params.get("category")),
        condition=coerce_text(params.get("condition")),
        location_text=coerce_text(params.get("location")),
        coordinates=parse_coordinates(params.get("lat"), params.get("lng")),
        radius_km=coerce_positive_float(params.get("distance"), default_radius_km),
        sort_key=SortKey.parse(params.get("sort")),
        page=coerce_positive_int(params.get("page"), 1, max_page_for(page_size)),
        page_size=page_size,
    )


def parse_listing_request(
    params: Mapping[str, Any],
    default_page_size: int = 25,
    max_page_size: int | None = None,
) -> ListingRequest:
    """Parse the reserved ``select``/``sort``/``page``/``limit`` keys of a listing."""
    select = coerce_text(params.get("select"))
    fields = [f.strip() for f in select.split(",") if f.strip()] if select else None
    page_size = coerce_positive_int(params.get("limit"), default_page_size, max_page_size or MAX_BSON_INT)
    return ListingRequest(
        select=fields or None,
        sort=coerce_text(params.get("sort")),
        page=coerce_positive_int(params.get("page"), 1, max_page_for(page_size)),
        page_size=page_size,
    )
