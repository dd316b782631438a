"""
Filter compiler for MongoDB find/count queries.

Turns client query parameters into a CompiledFilter: an immutable
conjunction of predicates rendered with STANDARD MongoDB operators
($gt, $gte, $lt, $lte, $in, $regex, $text, $near).

Example:
    ?category=books&price[gte]=5&price[lt]=20&sort=-createdAt&page=2

    nest_query_params(...) ->
        {"category": "books", "price": {"gte": "5", "lt": "20"},
         "sort": "-createdAt", "page": "2"}

    compile_filter(..., casts={"price": parse_number}).to_query() ->
        {"category": "books", "price": {"$gte": 5, "$lt": 20}}

Reserved keys (select, sort, page, limit) never reach the filter; they are
routed to the projection, sort and pagination steps instead.
"""

from __future__ import annotations

import copy
import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

from bson import ObjectId
from bson.errors import InvalidId

if TYPE_CHECKING:
    from .geo import ProximityPredicate

logger = logging.getLogger("bartersearch.filters")

RESERVED_KEYS = frozenset({"select", "sort", "page", "limit"})
COMPARATORS = frozenset({"gt", "gte", "lt", "lte", "in"})

Cast = Callable[[str], Any]

_BRACKET_KEY = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")
_BRACKET_PART = re.compile(r"\[([^\[\]]*)\]")


# ---------------------------------------------------------------------------
# Value casts
# ---------------------------------------------------------------------------


def parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def parse_number(value: str) -> int | float:
    number = float(value)
    return int(number) if number.is_integer() and "." not in value else number


def parse_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value.strip())
    except InvalidId as e:
        raise ValueError(str(e)) from e


def parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))


def _apply_cast(value: Any, cast: Cast | None) -> Any:
    """Cast a raw string; values that do not parse are kept as-is."""
    if cast is None or not isinstance(value, str):
        return value
    try:
        return cast(value)
    except (TypeError, ValueError):
        logger.debug(f"[FILTER] Keeping raw value {value!r}: cast failed")
        return value


# ---------------------------------------------------------------------------
# Compiled filter
# ---------------------------------------------------------------------------


def _merge_clauses(clauses: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    """AND clauses together, flattening into one document when keys do not collide."""
    clauses = [copy.deepcopy(dict(c)) for c in clauses if c]
    merged: dict[str, Any] = {}
    for clause in clauses:
        if any(key in merged for key in clause):
            return {"$and": clauses}
        merged.update(clause)
    return merged


@dataclass(frozen=True)
class CompiledFilter:
    """
    Immutable conjunction of predicates.

    ``clauses`` are single-purpose MongoDB filter fragments. The proximity
    predicate is kept apart because it renders differently for the fetch
    ($near, ordered by distance) and for the count ($geoWithin, which
    count_documents accepts and which selects the same documents).
    """

    clauses: tuple[Mapping[str, Any], ...] = ()
    proximity: ProximityPredicate | None = None
    text_mode: str | None = None

    def with_clause(self, clause: Mapping[str, Any] | None) -> CompiledFilter:
        """Return a copy with ``clause`` ANDed in; ``None``/empty is a no-op."""
        if not clause:
            return self
        return replace(self, clauses=self.clauses + (dict(clause),))

    def with_proximity(self, proximity: ProximityPredicate | None) -> CompiledFilter:
        if proximity is None:
            return self
        return replace(self, proximity=proximity)

    def with_text_mode(self, mode: str | None) -> CompiledFilter:
        return replace(self, text_mode=mode)

    @property
    def has_proximity(self) -> bool:
        return self.proximity is not None

    def _render(self, geo_clause: Mapping[str, Any] | None) -> dict[str, Any]:
        query = _merge_clauses(self.clauses)
        if geo_clause:
            # Geo operators must stay at the top level of the query document
            query.update(copy.deepcopy(dict(geo_clause)))
        return query

    def to_query(self) -> dict[str, Any]:
        """Filter document for ``find``."""
        return self._render(self.proximity.near_clause() if self.proximity else None)

    def for_count(self) -> dict[str, Any]:
        """Filter document for ``count_documents``."""
        return self._render(self.proximity.within_clause() if self.proximity else None)


# ---------------------------------------------------------------------------
# Query string handling
# ---------------------------------------------------------------------------


def _walk(target: dict[str, Any], path: list[str]) -> dict[str, Any]:
    """Descend to the mapping at ``path``; scalars in the way are replaced by mappings."""
    node = target
    for part in path:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    return node


def _assign(target: dict[str, Any], path: list[str], value: Any) -> None:
    node = _walk(target, path[:-1])
    leaf = path[-1]
    if leaf in node:
        existing = node[leaf]
        node[leaf] = existing + [value] if isinstance(existing, list) else [existing, value]
    else:
        node[leaf] = value


def nest_query_params(items: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """
    Build nested parameters from flat query pairs.

    ``price[gte]=5`` becomes ``{"price": {"gte": "5"}}``; a repeated key
    becomes a list; ``tags[]=a&tags[]=b`` becomes ``{"tags": ["a", "b"]}``.
    Keys that are not bracket-shaped are kept verbatim.
    """
    nested: dict[str, Any] = {}
    for key, value in items:
        match = _BRACKET_KEY.match(key)
        if not match:
            _assign(nested, [key], value)
            continue

        root, brackets = match.groups()
        parts = _BRACKET_PART.findall(brackets)
        if parts and parts[-1] == "":
            parent_path = [root, *parts[:-1]]
            node = _walk(nested, parent_path[:-1])
            current = node.get(parent_path[-1])
            if isinstance(current, list):
                current.append(value)
            elif current is None:
                node[parent_path[-1]] = [value]
            else:
                node[parent_path[-1]] = [current, value]
            continue

        _assign(nested, [root, *parts], value)
    return nested


def _split_in_operand(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [value]


def _compile_field(
    path: str,
    value: Any,
    casts: Mapping[str, Cast],
) -> dict[str, Any]:
    """Compile one field into filter entries keyed by (dotted) path."""
    cast = casts.get(path)

    if not isinstance(value, Mapping):
        if isinstance(value, list):
            # Repeated key: any of the values
            return {path: {"$in": [_apply_cast(v, cast) for v in value]}}
        return {path: _apply_cast(value, cast)}

    entries: dict[str, Any] = {}
    operators: dict[str, Any] = {}
    for token, operand in value.items():
        if token.startswith("$"):
            logger.debug(f"[FILTER] Dropping raw operator {path}[{token}]")
            continue
        if token in COMPARATORS:
            if token == "in":
                operators["$in"] = [_apply_cast(v, cast) for v in _split_in_operand(operand)]
            else:
                operators[f"${token}"] = _apply_cast(operand, cast)
        else:
            entries.update(_compile_field(f"{path}.{token}", operand, casts))

    if operators:
        entries[path] = operators
    return entries


def compile_filter(
    params: Mapping[str, Any],
    casts: Mapping[str, Cast] | None = None,
) -> CompiledFilter:
    """
    Compile client parameters into a CompiledFilter.

    Reserved keys are removed. Mappings holding bare comparator tokens
    (gt, gte, lt, lte, in) become operator expressions; other nested keys
    become dotted-path equality; scalars become equality. Unknown fields are
    not validated: they simply match nothing in the store.

    Args:
        params: Parameters, typically from ``nest_query_params``
        casts: Optional field -> callable converting raw strings

    Returns:
        CompiledFilter with one clause per filtered field
    """
    casts = casts or {}
    compiled = CompiledFilter()
    for key, value in params.items():
        if key in RESERVED_KEYS:
            continue
        if key.startswith("$"):
            logger.debug(f"[FILTER] Dropping raw top-level operator {key}")
            continue
        entries = _compile_field(key, value, casts)
        for path, condition in entries.items():
            compiled = compiled.with_clause({path: condition})
    return compiled
