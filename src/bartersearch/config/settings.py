"""
Configuration settings for bartersearch.

Uses pydantic-settings for type-safe configuration from environment variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """bartersearch configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # MongoDB
    mongodb_uri: SecretStr = Field(
        default=SecretStr("mongodb://localhost:27017"),
        description="MongoDB connection URI",
    )
    mongodb_database: str = Field(
        default="barter",
        description="MongoDB database name",
    )
    items_collection: str = Field(
        default="items",
        description="Collection holding listed items",
    )
    users_collection: str = Field(
        default="users",
        description="Collection holding users (item owners)",
    )

    # Pagination
    search_page_size: int = Field(
        default=12,
        ge=1,
        description="Default page size for item search",
    )
    listing_page_size: int = Field(
        default=25,
        ge=1,
        description="Default page size for generic resource listings",
    )
    max_page_size: int = Field(
        default=100,
        ge=1,
        description="Upper bound applied to any requested page size",
    )

    # Geospatial
    default_radius_km: float = Field(
        default=10.0,
        gt=0,
        description="Search radius in kilometers when none is supplied",
    )

    # Startup
    ensure_indexes_on_startup: bool = Field(
        default=False,
        description="Create/verify collection indexes when the API starts",
    )

    # Administration
    admin_api_key: SecretStr | None = Field(
        default=None,
        description="Key required in X-Admin-Key for maintenance endpoints (unset disables them)",
    )

    # API / logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level for the bartersearch loggers",
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed by the CORS middleware",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
