"""
Pydantic models for API responses.

Listings return ``PaginationEnvelope`` from ``bartersearch.query.results``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "degraded", "unhealthy"]
    components: dict[str, str]
    capabilities: dict[str, bool] = Field(default_factory=dict)
    version: str


class IndexResponse(BaseModel):
    """Result of an index maintenance call."""

    success: bool = True
    message: str
    index: str


class ErrorResponse(BaseModel):
    """Error response."""

    success: bool = False
    error: str
    code: str
    details: Any | None = None

    model_config = {"json_schema_extra": {"example": {"success": False, "error": "Search failed", "code": "SEARCH_FAILED"}}}
