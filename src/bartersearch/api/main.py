"""
FastAPI application for bartersearch.

Endpoints:
- GET  /health                       store ping + capability flags
- GET  /api/v1/items/search          geospatial + text item search
- GET  /api/v1/items                 generic item listing
- GET  /api/v1/items/user/{user_id}  one owner's visible items
- GET  /api/v1/users                 generic user listing (admin)
- POST /api/v1/items/geo-index       (re)create the 2dsphere index (admin)
"""

from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import TYPE_CHECKING

from fastapi import Depends, FastAPI, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from .. import __version__
from ..config.settings import Settings, get_settings
from ..core.engine import SearchEngine
from ..core.exceptions import AdminAccessDenied, BarterSearchError, SearchFailedError
from ..core.resources import ITEMS, USERS
from ..log import configure_logging
from ..query.filters import nest_query_params
from ..storage.mongo import MarketplaceStore
from .models import ErrorResponse, HealthResponse, IndexResponse

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from ..query.results import PaginationEnvelope

logger = logging.getLogger("bartersearch.api")


def get_engine(request: Request) -> SearchEngine:
    """Get the engine created by the lifespan handler."""
    return request.app.state.engine


def require_admin(
    request: Request,
    x_admin_key: str | None = Header(default=None),
) -> None:
    """
    Reject callers without the configured admin key.

    With no key configured every call is rejected.
    """
    expected = request.app.state.settings.admin_api_key
    if expected is None or x_admin_key is None:
        raise AdminAccessDenied()
    if not secrets.compare_digest(x_admin_key.encode(), expected.get_secret_value().encode()):
        raise AdminAccessDenied()


async def barter_error_handler(request: Request, exc: BarterSearchError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(
            ErrorResponse(error=exc.message, code=exc.code, details=exc.details).model_dump(exclude_none=True)
        ),
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render any other failure as a search failure, keeping the error envelope."""
    logger.exception(f"[API] Unhandled error on {request.url.path}: {exc}")
    fallback = SearchFailedError()
    return JSONResponse(
        status_code=fallback.status_code,
        content=ErrorResponse(error=fallback.message, code=fallback.code).model_dump(exclude_none=True),
    )


def _envelope_response(envelope: PaginationEnvelope) -> JSONResponse:
    return JSONResponse(status_code=200, content=jsonable_encoder(envelope.to_dict()))


def _query_params(request: Request) -> dict:
    return nest_query_params(request.query_params.multi_items())


def create_app(
    settings: Settings | None = None,
    store: MarketplaceStore | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Configuration (defaults to ``get_settings()``)
        store: Pre-built store; created from settings when omitted
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        app_store = store or MarketplaceStore(settings)
        await app_store.initialize()

        engine = SearchEngine(app_store, settings)
        if settings.ensure_indexes_on_startup:
            await app_store.ensure_indexes()
        try:
            await engine.refresh_capabilities()
        except PyMongoError as e:
            # Without index information, assume neither index exists
            logger.warning(f"[API] Capability detection failed, degrading: {e}")
            engine.set_capabilities(replace(engine.capabilities, has_geo_index=False, has_text_index=False))

        app.state.store = app_store
        app.state.engine = engine

        yield

        await app_store.close()

    app = FastAPI(
        title="bartersearch API",
        description="Item search and paginated listings for a bartering marketplace",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(BarterSearchError, barter_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register all API routes."""

    error_responses = {500: {"model": ErrorResponse}}
    admin_responses = {403: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check(request: Request) -> HealthResponse:
        """Check store connectivity and report index capabilities."""
        engine = get_engine(request)
        reachable = await request.app.state.store.ping()
        components = {"api": "healthy", "mongodb": "healthy" if reachable else "unhealthy"}
        capabilities = engine.capabilities

        return HealthResponse(
            status="healthy" if reachable else "degraded",
            components=components,
            capabilities={
                "geo_index": capabilities.has_geo_index,
                "text_index": capabilities.has_text_index,
            },
            version=__version__,
        )

    @app.get("/api/v1/items/search", responses=error_responses, tags=["items"])
    async def search_items(request: Request, engine: SearchEngine = Depends(get_engine)) -> JSONResponse:
        """
        Search available items.

        Query parameters: q, category, condition, location, lat, lng,
        distance (km), sort (recent|oldest|az|za|nearest|relevance),
        page, limit.
        """
        envelope = await engine.search_items(_query_params(request))
        return _envelope_response(envelope)

    @app.get("/api/v1/items", responses=error_responses, tags=["items"])
    async def list_items(request: Request, engine: SearchEngine = Depends(get_engine)) -> JSONResponse:
        """
        List items with arbitrary field filters.

        Supports ``field=value``, ``field[gt|gte|lt|lte|in]=value``,
        ``select=a,b``, ``sort=-createdAt,title``, ``page`` and ``limit``.
        """
        envelope = await engine.list_resource(ITEMS, _query_params(request))
        return _envelope_response(envelope)

    @app.get("/api/v1/items/user/{user_id}", responses=error_responses, tags=["items"])
    async def list_user_items(
        user_id: str,
        request: Request,
        engine: SearchEngine = Depends(get_engine),
    ) -> JSONResponse:
        """List one user's available items (pending or approved)."""
        envelope = await engine.list_items_by_owner(user_id, _query_params(request))
        return _envelope_response(envelope)

    @app.post(
        "/api/v1/items/geo-index",
        response_model=IndexResponse,
        responses=admin_responses,
        dependencies=[Depends(require_admin)],
        tags=["admin"],
    )
    async def create_geo_index(engine: SearchEngine = Depends(get_engine)) -> IndexResponse:
        """Create the geospatial index on item coordinates; safe to repeat."""
        name = await engine.create_geo_index()
        return IndexResponse(message="Geospatial index created", index=name)

    @app.get(
        "/api/v1/users",
        responses=admin_responses,
        dependencies=[Depends(require_admin)],
        tags=["users"],
    )
    async def list_users(request: Request, engine: SearchEngine = Depends(get_engine)) -> JSONResponse:
        """List users; credential fields are never returned."""
        envelope = await engine.list_resource(USERS, _query_params(request))
        return _envelope_response(envelope)


# Create default app instance
app = create_app()
