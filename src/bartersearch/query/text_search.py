"""
Free-text search strategy.

Two ways to match a term against item text:

1. Indexed: ``{"$text": {"$search": term}}`` over the collection's text
   index (title + description).
2. Fallback: case-insensitive substring match on each text field,
   OR-combined. Always available, no index required.

The indexed path is tried first. Any failure to construct it (no text
index, or a proximity predicate in the same query, which MongoDB does not
allow next to ``$text``) selects the fallback. An empty result is not a
failure and never triggers the fallback.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Literal

from ..core.exceptions import TextIndexUnavailable
from .capabilities import CollectionCapabilities

logger = logging.getLogger("bartersearch.text_search")

TextMode = Literal["text", "regex"]


@dataclass(frozen=True)
class TextPredicate:
    """A filter clause for a search term and the strategy that produced it."""

    clause: dict[str, Any]
    mode: TextMode


def indexed_text_clause(
    term: str,
    capabilities: CollectionCapabilities,
    proximity: bool = False,
) -> dict[str, Any]:
    """
    Build the ``$text`` clause.

    Raises:
        TextIndexUnavailable: If the collection has no text index, or the
            query also carries a ``$near`` predicate
    """
    if not capabilities.has_text_index:
        raise TextIndexUnavailable(details={"reason": "no text index"})
    if proximity:
        raise TextIndexUnavailable(details={"reason": "$text cannot be combined with $near"})
    return {"$text": {"$search": term}}


def substring_clause(term: str, fields: tuple[str, ...]) -> dict[str, Any]:
    """OR of case-insensitive substring matches; the term is matched literally."""
    pattern = re.escape(term)
    return {"$or": [{f: {"$regex": pattern, "$options": "i"}} for f in fields]}


def build_text_predicate(
    term: str | None,
    capabilities: CollectionCapabilities,
    proximity: bool = False,
) -> TextPredicate | None:
    """
    Resolve a search term into a predicate to AND into the filter.

    Args:
        term: Raw search term; ``None``, empty or whitespace-only is a no-op
        capabilities: Capability descriptor of the searched collection
        proximity: Whether the query also carries a proximity predicate

    Returns:
        TextPredicate, or ``None`` when there is nothing to search for
    """
    if term is None or not term.strip():
        return None
    term = term.strip()

    try:
        clause = indexed_text_clause(term, capabilities, proximity=proximity)
        return TextPredicate(clause=clause, mode="text")
    except TextIndexUnavailable as e:
        logger.info(f"[TEXT] Falling back to substring search: {e.details['reason']}")
        return TextPredicate(clause=substring_clause(term, capabilities.text_fields), mode="regex")
