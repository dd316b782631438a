"""
bartersearch configuration.

Type-safe configuration using pydantic-settings.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
