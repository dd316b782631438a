"""
Result assembly: count, fetch, populate, wrap.

Executes a compiled query against a Motor collection and shapes the
response envelope:

    {
        "success": true,
        "count": 1,            # len(data)
        "total": 2,            # all matches, independent of the page
        "pagination": {"page": 1, "limit": 1, "total": 2, "pages": 2,
                       "next": {"page": 2, "limit": 1}},
        "data": [...]
    }

The collection is only read. No results is a successful, empty envelope.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bson import ObjectId
from pydantic import BaseModel, Field

from .filters import CompiledFilter
from .geo import annotate_distances
from .pagination import PageWindow, Pagination, build_pagination, count_total
from .sorting import SortSpec

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorCollection

logger = logging.getLogger("bartersearch.results")

# Never selected from the users collection, whatever a caller asks for
CREDENTIAL_FIELDS = frozenset(
    {"password", "resetPasswordToken", "resetPasswordExpire", "verificationToken"}
)


class PaginationEnvelope(BaseModel):
    """Response wrapper for any paginated listing."""

    success: bool = True
    count: int = Field(..., ge=0, description="Number of documents in data")
    total: int = Field(..., ge=0, description="Documents matching the filter")
    pagination: Pagination
    data: list[dict[str, Any]] = Field(default_factory=list)
    geospatial: dict[str, Any] | None = Field(
        default=None, description="Search center and radius when a proximity filter applied"
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the HTTP response; absent blocks are left out."""
        body: dict[str, Any] = {
            "success": self.success,
            "count": self.count,
            "total": self.total,
            "pagination": self.pagination.to_dict(),
            "data": self.data,
        }
        if self.geospatial is not None:
            body["geospatial"] = self.geospatial
        return body


def to_jsonable(value: Any) -> Any:
    """Recursively turn ObjectIds into strings; other values pass through."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class OwnerLookup:
    """
    Replaces an owner reference with a restricted view of the owner.

    Attributes:
        collection: Users collection
        local_field: Field of the listed documents holding the owner id
        fields: Owner fields to expose
    """

    collection: "AsyncIOMotorCollection"
    local_field: str = "user"
    fields: tuple[str, ...] = ("name", "email")

    def __post_init__(self):
        """Refuse credential fields."""
        leaked = CREDENTIAL_FIELDS.intersection(self.fields)
        if leaked:
            raise ValueError(f"Owner projection must not include {sorted(leaked)}")

    @property
    def projection(self) -> dict[str, int]:
        return {f: 1 for f in self.fields}

    async def populate(self, docs: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Attach owners in place with one ``$in`` query; unknown owners keep the raw id."""
        owner_ids = list({doc[self.local_field] for doc in docs if isinstance(doc.get(self.local_field), ObjectId)})
        if not owner_ids:
            return docs

        cursor = self.collection.find({"_id": {"$in": owner_ids}}, self.projection)
        owners = {owner["_id"]: owner for owner in await cursor.to_list(length=None)}

        for doc in docs:
            owner = owners.get(doc.get(self.local_field))
            if owner is not None:
                doc[self.local_field] = owner
        return docs


async def assemble(
    collection: "AsyncIOMotorCollection",
    compiled: CompiledFilter,
    window: PageWindow,
    sort: SortSpec | None = None,
    projection: dict[str, Any] | None = None,
    owner: OwnerLookup | None = None,
) -> PaginationEnvelope:
    """
    Run the count and the page fetch, then build the envelope.

    The count always runs first; the two round trips are sequential. Store
    errors propagate unchanged and nothing is retried.

    Args:
        collection: Collection to read
        compiled: Filter shared by count and fetch
        window: Page to fetch
        sort: Explicit sort, or ``None`` to keep the filter's natural order
        projection: Optional pymongo projection
        owner: Optional owner population

    Returns:
        PaginationEnvelope for the requested page
    """
    total = await count_total(collection, compiled)

    cursor = collection.find(compiled.to_query(), projection)
    if sort:
        cursor = cursor.sort(sort)
    cursor = cursor.skip(window.skip).limit(window.limit)
    docs = await cursor.to_list(length=window.limit)

    if docs and owner is not None:
        docs = await owner.populate(docs)

    geospatial = None
    if compiled.proximity is not None:
        docs = annotate_distances(docs, compiled.proximity)
        geospatial = {
            "center": compiled.proximity.center.to_geojson(),
            "radius_km": compiled.proximity.radius_km,
        }

    data = [to_jsonable(doc) for doc in docs]
    return PaginationEnvelope(
        success=True,
        count=len(data),
        total=total,
        pagination=build_pagination(window, total),
        data=data,
        geospatial=geospatial,
    )
