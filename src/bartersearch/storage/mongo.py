"""
MongoDB storage for the marketplace collections.

Owns the Motor client and the index definitions the query engine relies
on. Everything here is idempotent: ``create_index`` on an existing,
identical index is a no-op in MongoDB, so ``ensure_indexes`` and
``create_geo_index`` are safe to call repeatedly.

Item document (relevant fields):
    {
        "_id": ObjectId,
        "title": "Mountain bike",
        "description": "...",
        "category": "books" | "electronics" | "clothing" | "furniture" | "other",
        "condition": "new" | "like_new" | "good" | "fair" | "poor",
        "location": "Madrid",
        "coordinates": {"type": "Point", "coordinates": [lng, lat], "enabled": true},
        "available": true,
        "moderationStatus": "pending" | "approved" | "rejected",
        "user": ObjectId,
        "createdAt": ISODate
    }
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING, GEOSPHERE, TEXT
from pymongo.errors import PyMongoError

from ..config.settings import Settings, get_settings
from ..core.exceptions import IndexCreationError

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase

logger = logging.getLogger("bartersearch.storage")

GEO_FIELD = "coordinates.coordinates"
TEXT_INDEX_NAME = "item_text_index"
TEXT_INDEX_WEIGHTS = {"title": 10, "description": 5}


class MarketplaceStore:
    """
    Motor-backed access to the items and users collections.

    Example:
        ```python
        store = MarketplaceStore(get_settings())
        await store.initialize()
        await store.ensure_indexes()
        items = store.items
        await store.close()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: AsyncIOMotorClient | None = None,
    ):
        """
        Initialize MarketplaceStore.

        Args:
            settings: Configuration (defaults to ``get_settings()``)
            client: Pre-built Motor client, mainly for tests
        """
        self._settings = settings or get_settings()
        self._client = client
        self._db: AsyncIOMotorDatabase | None = None
        self._initialized = False

    async def initialize(self) -> None:
        """Open the Motor client; no round trip happens until first use."""
        if self._initialized:
            return

        logger.info(f"[STORE] Connecting to database '{self._settings.mongodb_database}'")
        if self._client is None:
            self._client = AsyncIOMotorClient(self._settings.mongodb_uri.get_secret_value())
        self._db = self._client[self._settings.mongodb_database]
        self._initialized = True

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("MarketplaceStore not initialized. Call 'await store.initialize()' first.")

    @property
    def db(self) -> AsyncIOMotorDatabase:
        self._ensure_initialized()
        return self._db

    @property
    def items(self) -> AsyncIOMotorCollection:
        return self.db[self._settings.items_collection]

    @property
    def users(self) -> AsyncIOMotorCollection:
        return self.db[self._settings.users_collection]

    async def ping(self) -> bool:
        """Return True if the server answers a ping."""
        try:
            await self.db.command("ping")
            return True
        except PyMongoError as e:
            logger.warning(f"[STORE] Ping failed: {e}")
            return False

    async def ensure_indexes(self) -> list[str]:
        """
        Create or verify the indexes used by listings and search.

        Returns:
            Names of the indexes ensured
        """
        items = self.items
        names = [
            await items.create_index([("user", ASCENDING)]),
            await items.create_index([("category", ASCENDING)]),
            await items.create_index([("condition", ASCENDING)]),
            await items.create_index([("available", ASCENDING)]),
            await items.create_index([("createdAt", DESCENDING)]),
            await items.create_index(
                [("available", ASCENDING), ("moderationStatus", ASCENDING), ("createdAt", DESCENDING)]
            ),
            await items.create_index(
                [("title", TEXT), ("description", TEXT)],
                name=TEXT_INDEX_NAME,
                weights=TEXT_INDEX_WEIGHTS,
            ),
        ]
        logger.info("[STORE] Item indexes created/verified")

        names.append(await self.create_geo_index())
        names.append(await self.users.create_index([("email", ASCENDING)], unique=True))
        logger.info("[STORE] User indexes created/verified")
        return names

    async def create_geo_index(self) -> str:
        """
        Create the 2dsphere index on the item location field.

        Raises:
            IndexCreationError: If the server refuses to build the index
        """
        try:
            name = await self.items.create_index([(GEO_FIELD, GEOSPHERE)])
        except PyMongoError as e:
            logger.error(f"[STORE] Error creating geospatial index on '{GEO_FIELD}': {e}")
            raise IndexCreationError(details={"field": GEO_FIELD, "error": str(e)}) from e

        logger.info(f"[STORE] Geospatial index '{name}' created/verified")
        return name

    async def close(self) -> None:
        """Close the Motor client."""
        if self._client is not None:
            self._client.close()
        self._client = None
        self._db = None
        self._initialized = False
        logger.info("[STORE] Connection closed")
