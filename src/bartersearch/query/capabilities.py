"""
Collection capability descriptors.

A descriptor says, once per collection type, which indexed features a query
strategy may rely on. Search code branches on these flags instead of trying
a query and catching the failure, so the decision is visible and testable
without a database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorCollection

logger = logging.getLogger("bartersearch.capabilities")


@dataclass(frozen=True)
class CollectionCapabilities:
    """Indexed features a collection exposes to the query engine."""

    has_geo_index: bool = False
    has_text_index: bool = False

    # GeoJSON point field (``[lng, lat]``) carrying the 2dsphere index
    geo_field: str = "coordinates.coordinates"
    # Per-document switch; documents with geolocation off never match proximity
    geo_enabled_field: str | None = "coordinates.enabled"

    # Fields covered by the text index, also used by the regex fallback
    text_fields: tuple[str, ...] = ("title", "description")

    availability_field: str = "available"


# Item schema as declared: weighted text index plus 2dsphere point.
ITEM_CAPABILITIES = CollectionCapabilities(has_geo_index=True, has_text_index=True)

# Legacy item schema without geolocation.
PLAIN_ITEM_CAPABILITIES = CollectionCapabilities(has_geo_index=False, has_text_index=True)


def capabilities_from_indexes(
    index_info: dict[str, Any],
    declared: CollectionCapabilities,
) -> CollectionCapabilities:
    """
    Narrow ``declared`` to what ``index_information()`` reports.

    A flag stays true only if the schema declares the feature and the store
    actually carries the index. ``index_info`` maps index names to
    ``{"key": [(field, type), ...], ...}``.
    """
    has_geo = False
    has_text = False
    for spec in index_info.values():
        for field_name, kind in spec.get("key", []):
            if kind == "2dsphere" and field_name == declared.geo_field:
                has_geo = True
            elif kind == "text":
                has_text = True

    return replace(
        declared,
        has_geo_index=declared.has_geo_index and has_geo,
        has_text_index=declared.has_text_index and has_text,
    )


async def detect_capabilities(
    collection: "AsyncIOMotorCollection",
    declared: CollectionCapabilities = ITEM_CAPABILITIES,
) -> CollectionCapabilities:
    """
    Resolve the capability descriptor of ``collection`` from its indexes.

    Args:
        collection: Motor collection to inspect
        declared: Capabilities the schema declares

    Returns:
        Descriptor whose flags reflect the indexes present in the store
    """
    index_info = await collection.index_information()
    resolved = capabilities_from_indexes(index_info, declared)
    logger.info(
        f"[CAPABILITIES] {collection.name}: geo={resolved.has_geo_index}, "
        f"text={resolved.has_text_index}"
    )
    return resolved
