"""
bartersearch core.

The engine lives in ``bartersearch.core.engine``; it is not imported here
so the query package can depend on the exceptions without a cycle.
"""

from .exceptions import (
    AdminAccessDenied,
    BarterSearchError,
    IndexCreationError,
    SearchFailedError,
    TextIndexUnavailable,
)

__all__ = [
    "BarterSearchError",
    "SearchFailedError",
    "IndexCreationError",
    "AdminAccessDenied",
    "TextIndexUnavailable",
]
