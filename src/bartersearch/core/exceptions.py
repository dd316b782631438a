"""
Exception hierarchy for bartersearch.

Every error carries a stable ``code`` and an HTTP ``status_code`` so the API
layer can render it without inspecting the type.
"""

from __future__ import annotations

from typing import Any


class BarterSearchError(Exception):
    code = "BARTERSEARCH_ERROR"
    message = "Request failed"
    status_code = 500

    def __init__(self, message: str | None = None, details: Any = None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


class SearchFailedError(BarterSearchError):
    code = "SEARCH_FAILED"
    message = "Search failed"


class IndexCreationError(BarterSearchError):
    code = "INDEX_CREATION_FAILED"
    message = "Could not create the geospatial index"


class AdminAccessDenied(BarterSearchError):
    code = "FORBIDDEN"
    message = "Not authorized to perform this action"
    status_code = 403


class TextIndexUnavailable(BarterSearchError):
    """Raised while building an indexed text predicate that cannot be used."""

    code = "TEXT_INDEX_UNAVAILABLE"
    message = "Indexed text search is not available for this query"
