"""
Listable resources.

A ResourceSpec tells the generic listing which collection to read, how to
type raw query values (the schema's role in casting) and which fields may
never leave the server.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..query.filters import Cast, parse_bool, parse_datetime, parse_number, parse_object_id
from ..query.results import CREDENTIAL_FIELDS


@dataclass(frozen=True)
class ResourceSpec:
    """
    Description of a listable collection.

    Attributes:
        name: Resource name used in logs and routes
        collection: Attribute of MarketplaceStore holding the collection
        casts: Field -> converter for raw query string values
        hidden_fields: Fields excluded from every response
        populate_owner: Replace the ``user`` reference with the owner's public fields
    """

    name: str
    collection: str
    casts: Mapping[str, Cast] = field(default_factory=dict)
    hidden_fields: tuple[str, ...] = ()
    populate_owner: bool = False

    def projection(self, select: list[str] | None) -> dict[str, Any] | None:
        """
        Build the pymongo projection for a ``select`` list.

        Selected fields are included, hidden ones are always dropped. With
        nothing (visible) selected, hidden fields are excluded instead.
        """
        if select:
            visible = [f for f in select if f not in self.hidden_fields]
            if visible:
                return {f: 1 for f in visible}
        if self.hidden_fields:
            return {f: 0 for f in self.hidden_fields}
        return None


ITEMS = ResourceSpec(
    name="items",
    collection="items",
    casts={
        "available": parse_bool,
        "coordinates.enabled": parse_bool,
        "user": parse_object_id,
        "_id": parse_object_id,
        "createdAt": parse_datetime,
        "updatedAt": parse_datetime,
    },
    hidden_fields=("imagePublicIds",),
    populate_owner=True,
)

USERS = ResourceSpec(
    name="users",
    collection="users",
    casts={
        "_id": parse_object_id,
        "createdAt": parse_datetime,
        "rating": parse_number,
    },
    hidden_fields=tuple(sorted(CREDENTIAL_FIELDS)),
)

RESOURCES: dict[str, ResourceSpec] = {spec.name: spec for spec in (ITEMS, USERS)}
