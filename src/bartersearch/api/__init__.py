"""
bartersearch FastAPI Application.

REST API for item search and paginated listings.
"""

from .main import app, create_app
from .models import ErrorResponse, HealthResponse, IndexResponse

__all__ = [
    "app",
    "create_app",
    "HealthResponse",
    "IndexResponse",
    "ErrorResponse",
]
