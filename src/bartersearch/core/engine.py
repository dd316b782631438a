"""
bartersearch engine - item search and generic listings over MongoDB.

Control flow for one request (stateless, nothing is cached between calls):

    raw params -> parse-or-default -> CompiledFilter
               -> (+ proximity, + text predicate)
               -> sort resolution -> count -> fetch -> populate -> envelope

The only state the engine holds is the capability descriptor of the items
collection, resolved once and refreshed after index maintenance.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from pymongo.errors import PyMongoError

from ..config.settings import Settings, get_settings
from ..query.capabilities import ITEM_CAPABILITIES, CollectionCapabilities, detect_capabilities
from ..query.filters import CompiledFilter, compile_filter, parse_object_id
from ..query.geo import build_proximity_predicate, geo_enabled_clause
from ..query.pagination import PageWindow
from ..query.params import SearchRequest, parse_listing_request, parse_search_request
from ..query.results import OwnerLookup, PaginationEnvelope, assemble
from ..query.sorting import TEXT_SCORE, TEXT_SCORE_FIELD, parse_sort_param, resolve_sort
from ..query.text_search import build_text_predicate
from ..storage.mongo import MarketplaceStore
from .exceptions import SearchFailedError
from .resources import ITEMS, ResourceSpec

logger = logging.getLogger("bartersearch.core")
logger.setLevel(logging.INFO)

# Moderation states visible on a user's public item list
VISIBLE_MODERATION_STATES = ["pending", "approved"]


def build_search_filter(
    request: SearchRequest,
    capabilities: CollectionCapabilities,
) -> CompiledFilter:
    """
    Compose the item search filter.

    Category and condition match exactly, location matches as a
    case-insensitive substring, only available items are returned. The
    proximity predicate is added first so the text strategy knows whether
    ``$text`` is still allowed.
    """
    compiled = CompiledFilter()

    if request.category:
        compiled = compiled.with_clause({"category": request.category})
    if request.condition:
        compiled = compiled.with_clause({"condition": request.condition})
    if request.location_text:
        compiled = compiled.with_clause(
            {"location": {"$regex": re.escape(request.location_text), "$options": "i"}}
        )

    compiled = compiled.with_clause({capabilities.availability_field: True})

    proximity = build_proximity_predicate(request.coordinates, request.radius_km, capabilities)
    if proximity is not None:
        compiled = compiled.with_proximity(proximity).with_clause(geo_enabled_clause(capabilities))

    text = build_text_predicate(request.free_text, capabilities, proximity=proximity is not None)
    if text is not None:
        compiled = compiled.with_clause(text.clause).with_text_mode(text.mode)

    return compiled


class SearchEngine:
    """
    Entry point for item search and paginated listings.

    Example:
        ```python
        store = MarketplaceStore()
        await store.initialize()
        engine = SearchEngine(store)
        await engine.refresh_capabilities()

        envelope = await engine.search_items({"q": "bike", "lat": "40.4", "lng": "-3.7"})
        body = envelope.to_dict()
        ```
    """

    def __init__(
        self,
        store: MarketplaceStore,
        settings: Settings | None = None,
        capabilities: CollectionCapabilities = ITEM_CAPABILITIES,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self._declared = capabilities
        self._capabilities = capabilities

    @property
    def capabilities(self) -> CollectionCapabilities:
        return self._capabilities

    def set_capabilities(self, capabilities: CollectionCapabilities) -> None:
        self._capabilities = capabilities

    async def refresh_capabilities(self) -> CollectionCapabilities:
        """Re-read the item indexes and update the capability descriptor."""
        self._capabilities = await detect_capabilities(self.store.items, self._declared)
        return self._capabilities

    def _owner_lookup(self) -> OwnerLookup:
        return OwnerLookup(collection=self.store.users)

    async def search_items(self, params: Mapping[str, Any]) -> PaginationEnvelope:
        """
        Search available items.

        Args:
            params: Raw query parameters (q, category, condition, location,
                lat, lng, distance, sort, page, limit)

        Returns:
            PaginationEnvelope of matching items with owners populated

        Raises:
            SearchFailedError: If the count or the fetch fails in the store
        """
        request = parse_search_request(
            params,
            default_page_size=self.settings.search_page_size,
            default_radius_km=self.settings.default_radius_km,
            max_page_size=self.settings.max_page_size,
        )
        compiled = build_search_filter(request, self._capabilities)
        sort = resolve_sort(
            request.sort_key,
            proximity_active=compiled.has_proximity,
            text_active=compiled.text_mode == "text",
        )
        projection = None
        if sort and sort[0][0] == TEXT_SCORE_FIELD:
            projection = {TEXT_SCORE_FIELD: dict(TEXT_SCORE)}

        logger.debug(f"[SEARCH] query={compiled.to_query()} sort={sort}")

        try:
            envelope = await assemble(
                self.store.items,
                compiled,
                PageWindow(page=request.page, page_size=request.page_size),
                sort=sort,
                projection=projection,
                owner=self._owner_lookup(),
            )
        except PyMongoError as e:
            logger.error(f"[SEARCH] Item search failed: {e}")
            raise SearchFailedError(details={"resource": "items"}) from e

        logger.info(
            f"[SEARCH] {envelope.count} of {envelope.total} items "
            f"(page={request.page}, text={compiled.text_mode}, geo={compiled.has_proximity})"
        )
        return envelope

    async def list_resource(
        self,
        resource: ResourceSpec,
        params: Mapping[str, Any],
        base_filter: Mapping[str, Any] | None = None,
        default_page_size: int | None = None,
    ) -> PaginationEnvelope:
        """
        Generic filtered, sorted, paginated listing of a resource.

        Args:
            resource: Resource to list
            params: Nested query parameters (see ``nest_query_params``)
            base_filter: Clause ANDed in that the client cannot override
            default_page_size: Page size when ``limit`` is absent

        Returns:
            PaginationEnvelope of the requested page

        Raises:
            SearchFailedError: If the count or the fetch fails in the store
        """
        listing = parse_listing_request(
            params,
            default_page_size=default_page_size or self.settings.listing_page_size,
            max_page_size=self.settings.max_page_size,
        )
        compiled = compile_filter(params, resource.casts).with_clause(base_filter)
        sort = parse_sort_param(listing.sort)
        owner = self._owner_lookup() if resource.populate_owner else None

        logger.debug(f"[LISTING] {resource.name}: query={compiled.to_query()} sort={sort}")

        try:
            envelope = await assemble(
                getattr(self.store, resource.collection),
                compiled,
                PageWindow(page=listing.page, page_size=listing.page_size),
                sort=sort,
                projection=resource.projection(listing.select),
                owner=owner,
            )
        except PyMongoError as e:
            logger.error(f"[LISTING] {resource.name} listing failed: {e}")
            raise SearchFailedError(details={"resource": resource.name}) from e

        logger.info(f"[LISTING] {resource.name}: {envelope.count} of {envelope.total}")
        return envelope

    async def list_items_by_owner(
        self,
        owner_id: str,
        params: Mapping[str, Any],
    ) -> PaginationEnvelope:
        """
        List one user's visible items, newest first unless ``sort`` says otherwise.

        Only ``page``, ``limit`` and ``sort`` are read from ``params``.
        """
        try:
            owner: Any = parse_object_id(owner_id)
        except ValueError:
            owner = owner_id

        paging = {k: params[k] for k in ("page", "limit", "sort") if k in params}
        base_filter = {
            "user": owner,
            "available": True,
            "moderationStatus": {"$in": list(VISIBLE_MODERATION_STATES)},
        }
        return await self.list_resource(
            ITEMS,
            paging,
            base_filter=base_filter,
            default_page_size=self.settings.search_page_size,
        )

    async def create_geo_index(self) -> str:
        """Create the item geo index, then pick up the new capability."""
        name = await self.store.create_geo_index()
        try:
            await self.refresh_capabilities()
        except PyMongoError as e:
            logger.warning(f"[INDEX] Index '{name}' created but capabilities not refreshed: {e}")
        return name
