"""
Query composition and pagination for MongoDB collections.

Pipeline, leaves first:
1. params       - parse-or-default coercion of raw query parameters
2. filters      - FilterCompiler and the immutable CompiledFilter
3. text_search  - indexed $text with case-insensitive substring fallback
4. geo          - km -> m proximity predicate ($near / $geoWithin)
5. sorting      - symbolic sort keys -> pymongo sort specs
6. pagination   - skip/limit window, independent total count, metadata
7. results      - fetch, owner population, response envelope
"""

from .capabilities import (
    ITEM_CAPABILITIES,
    PLAIN_ITEM_CAPABILITIES,
    CollectionCapabilities,
    capabilities_from_indexes,
    detect_capabilities,
)
from .filters import (
    COMPARATORS,
    RESERVED_KEYS,
    CompiledFilter,
    compile_filter,
    nest_query_params,
    parse_bool,
    parse_datetime,
    parse_number,
    parse_object_id,
)
from .geo import (
    ProximityPredicate,
    annotate_distances,
    build_proximity_predicate,
    haversine_km,
    km_to_meters,
)
from .pagination import PageLink, PageWindow, Pagination, build_pagination, count_total
from .params import (
    Coordinates,
    ListingRequest,
    SearchRequest,
    SortKey,
    coerce_positive_float,
    coerce_positive_int,
    parse_coordinates,
    parse_listing_request,
    parse_search_request,
)
from .results import OwnerLookup, PaginationEnvelope, assemble, to_jsonable
from .sorting import parse_sort_param, resolve_sort
from .text_search import TextPredicate, build_text_predicate

__all__ = [
    # Capabilities
    "CollectionCapabilities",
    "ITEM_CAPABILITIES",
    "PLAIN_ITEM_CAPABILITIES",
    "capabilities_from_indexes",
    "detect_capabilities",
    # Parameters
    "Coordinates",
    "ListingRequest",
    "SearchRequest",
    "SortKey",
    "coerce_positive_float",
    "coerce_positive_int",
    "parse_coordinates",
    "parse_listing_request",
    "parse_search_request",
    # Filters
    "COMPARATORS",
    "RESERVED_KEYS",
    "CompiledFilter",
    "compile_filter",
    "nest_query_params",
    "parse_bool",
    "parse_datetime",
    "parse_number",
    "parse_object_id",
    # Text / geo / sort
    "TextPredicate",
    "build_text_predicate",
    "ProximityPredicate",
    "annotate_distances",
    "build_proximity_predicate",
    "haversine_km",
    "km_to_meters",
    "parse_sort_param",
    "resolve_sort",
    # Pagination / results
    "PageLink",
    "PageWindow",
    "Pagination",
    "build_pagination",
    "count_total",
    "OwnerLookup",
    "PaginationEnvelope",
    "assemble",
    "to_jsonable",
]
