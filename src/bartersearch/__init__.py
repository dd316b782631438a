"""
bartersearch - Query composition and pagination for a bartering marketplace.

This package provides:
- Item search: free text ($text with substring fallback), category,
  condition, location and radius filters over MongoDB
- Generic listings: field filters with comparison operators, projection,
  multi-field sort
- Offset pagination with an independent total count and next/prev links
- Capability descriptors that let search degrade when an index is missing

Quick Start:
    ```python
    from bartersearch import MarketplaceStore, SearchEngine

    store = MarketplaceStore()
    await store.initialize()
    engine = SearchEngine(store)
    await engine.refresh_capabilities()

    envelope = await engine.search_items({"q": "bike", "sort": "recent"})
    print(envelope.to_dict())
    ```

For API usage:
    ```bash
    uvicorn bartersearch.api.main:app --host 0.0.0.0 --port 8000
    ```
"""

__version__ = "0.1.0"

from .config.settings import Settings, get_settings
from .core.engine import SearchEngine, build_search_filter
from .core.exceptions import (
    AdminAccessDenied,
    BarterSearchError,
    IndexCreationError,
    SearchFailedError,
)
from .core.resources import ITEMS, RESOURCES, USERS, ResourceSpec
from .log import configure_logging
from .query import (
    ITEM_CAPABILITIES,
    CollectionCapabilities,
    CompiledFilter,
    PaginationEnvelope,
    SearchRequest,
    SortKey,
    compile_filter,
    parse_search_request,
)
from .storage import MarketplaceStore


# CLI exports (lazy import to avoid rich dependency)
def run_cli():
    """Run the bartersearch CLI."""
    from .cli import run_cli as _run_cli
    return _run_cli()


__all__ = [
    # Core
    "SearchEngine",
    "build_search_filter",
    "MarketplaceStore",
    # Config
    "Settings",
    "get_settings",
    "configure_logging",
    # Resources
    "ResourceSpec",
    "ITEMS",
    "USERS",
    "RESOURCES",
    # Query
    "CollectionCapabilities",
    "ITEM_CAPABILITIES",
    "CompiledFilter",
    "PaginationEnvelope",
    "SearchRequest",
    "SortKey",
    "compile_filter",
    "parse_search_request",
    # Errors
    "BarterSearchError",
    "SearchFailedError",
    "IndexCreationError",
    "AdminAccessDenied",
    # CLI
    "run_cli",
]
