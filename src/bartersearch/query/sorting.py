"""
Sort resolution.

Maps symbolic sort keys to pymongo sort specifications
(``[(field, direction), ...]``). ``None`` means the ordering is already
implied by the filter: a ``$near`` predicate returns documents
nearest-first, so ``nearest`` adds no explicit sort when proximity is
active. Without it, ``nearest`` degrades to ``recent``.
"""

from __future__ import annotations

from typing import Any

from .params import SortKey

SortSpec = list[tuple[str, Any]]

RECENT: SortSpec = [("createdAt", -1)]

SORT_FIELDS: dict[SortKey, SortSpec] = {
    SortKey.RECENT: RECENT,
    SortKey.OLDEST: [("createdAt", 1)],
    SortKey.AZ: [("title", 1)],
    SortKey.ZA: [("title", -1)],
}

TEXT_SCORE_FIELD = "score"
TEXT_SCORE: dict[str, str] = {"$meta": "textScore"}

# Aliases understood by the generic listing ``sort`` parameter
LISTING_ALIASES: dict[str, str] = {
    "recent": "-createdAt",
    "oldest": "createdAt",
    "title_asc": "title",
    "title_desc": "-title",
}


def resolve_sort(
    sort_key: SortKey | str,
    proximity_active: bool,
    text_active: bool = False,
) -> SortSpec | None:
    """
    Resolve a sort key for item search.

    Args:
        sort_key: Symbolic key; unknown values behave like ``recent``
        proximity_active: A ``$near`` predicate is part of the filter
        text_active: The indexed ``$text`` predicate is part of the filter

    Returns:
        Sort specification, or ``None`` when the filter already orders results
    """
    if not isinstance(sort_key, SortKey):
        sort_key = SortKey.parse(sort_key)

    if sort_key is SortKey.NEAREST:
        return None if proximity_active else list(RECENT)
    if sort_key is SortKey.RELEVANCE:
        return [(TEXT_SCORE_FIELD, dict(TEXT_SCORE))] if text_active else list(RECENT)
    return list(SORT_FIELDS.get(sort_key, RECENT))


def parse_sort_param(value: str | None) -> SortSpec:
    """
    Parse a listing ``sort`` parameter such as ``-createdAt,title``.

    A leading ``-`` sorts descending. The aliases in LISTING_ALIASES may be
    used for the whole value. Empty input means most recent first.
    """
    if not value or not value.strip():
        return list(RECENT)

    value = LISTING_ALIASES.get(value.strip(), value)
    spec: SortSpec = []
    for token in value.split(","):
        token = token.strip()
        if not token or token in ("-", "+"):
            continue
        if token.startswith("-"):
            spec.append((token[1:], -1))
        else:
            spec.append((token.lstrip("+"), 1))
    return spec or list(RECENT)
