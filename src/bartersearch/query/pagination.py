"""
Offset pagination over a MongoDB collection.

The total is counted with its own ``count_documents`` round trip, before
and independently of the page fetch. Under concurrent writes the total can
be slightly out of step with the page actually returned; that is accepted
for a UI page counter and no transaction is used to close the gap.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from .filters import CompiledFilter

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorCollection

logger = logging.getLogger("bartersearch.pagination")


@dataclass(frozen=True)
class PageWindow:
    """1-based page number and page size, both already coerced to >= 1."""

    page: int = 1
    page_size: int = 25

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def limit(self) -> int:
        return self.page_size


class PageLink(BaseModel):
    """Pointer to an adjacent page."""

    page: int
    limit: int


class Pagination(BaseModel):
    """Pagination metadata; ``limit`` is the page size."""

    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    pages: int = Field(..., ge=1)
    next: PageLink | None = None
    prev: PageLink | None = None

    def to_dict(self) -> dict:
        """Serialize, leaving out absent ``next``/``prev``."""
        return self.model_dump(exclude_none=True)


def build_pagination(window: PageWindow, total: int) -> Pagination:
    """
    Derive pagination metadata for ``window`` over ``total`` matches.

    ``pages`` is never below 1. ``next`` exists iff
    ``page * page_size < total``; ``prev`` exists iff ``page > 1``, except
    that an empty result has neither.
    """
    pages = max(1, math.ceil(total / window.page_size))
    pagination = Pagination(
        page=window.page,
        limit=window.page_size,
        total=total,
        pages=pages,
    )
    if total == 0:
        return pagination

    if window.page * window.page_size < total:
        pagination.next = PageLink(page=window.page + 1, limit=window.page_size)
    if window.page > 1:
        pagination.prev = PageLink(page=window.page - 1, limit=window.page_size)
    return pagination


async def count_total(
    collection: "AsyncIOMotorCollection",
    compiled: CompiledFilter,
) -> int:
    """Count every document matching ``compiled``, regardless of the page."""
    total = await collection.count_documents(compiled.for_count())
    logger.debug(f"[PAGINATION] {collection.name}: total={total}")
    return total
