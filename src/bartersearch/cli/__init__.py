"""
bartersearch CLI Module.

Provides a Typer command-line interface for status checks, index
maintenance, ad-hoc searches and serving the API.
"""

from .app import app, run_cli

__all__ = ["app", "run_cli"]
