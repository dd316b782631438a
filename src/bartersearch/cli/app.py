#!/usr/bin/env python3
"""
bartersearch CLI - Typer-based command-line interface.

Provides commands for:
- Store status and index capabilities
- Index maintenance
- Ad-hoc item searches
- Serving the HTTP API
"""

from __future__ import annotations

import asyncio
import sys

import typer
from pymongo.errors import PyMongoError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config.settings import get_settings
from ..core.engine import SearchEngine
from ..core.exceptions import BarterSearchError
from ..log import configure_logging
from ..storage.mongo import MarketplaceStore

# Initialize Typer app
app = typer.Typer(
    name="bartersearch",
    help="bartersearch - item search and listings for a bartering marketplace",
    add_completion=False,
)

# Rich console
console = Console()


def version_callback(value: bool):
    """Show version and exit."""
    if value:
        from .. import __version__

        console.print(f"bartersearch version: {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
):
    """
    bartersearch CLI - query composition and pagination over MongoDB.

    Use 'bartersearch COMMAND --help' for command-specific help.
    """
    pass


async def _open_engine() -> SearchEngine:
    settings = get_settings()
    configure_logging(settings.log_level)
    store = MarketplaceStore(settings)
    await store.initialize()
    return SearchEngine(store, settings)


@app.command()
def status():
    """
    Show configuration, connectivity and index capabilities.
    """

    async def _status():
        settings = get_settings()
        engine = await _open_engine()
        try:
            reachable = await engine.store.ping()
            capabilities = await engine.refresh_capabilities() if reachable else engine.capabilities

            table = Table(title="bartersearch Status", show_header=True)
            table.add_column("Setting", style="cyan", no_wrap=True)
            table.add_column("Value", style="green")

            table.add_row("MongoDB Database", settings.mongodb_database)
            table.add_row("Items Collection", settings.items_collection)
            table.add_row("Users Collection", settings.users_collection)
            table.add_row("MongoDB Reachable", "yes" if reachable else "[red]no[/red]")
            table.add_row("Geo Index", str(capabilities.has_geo_index))
            table.add_row("Text Index", str(capabilities.has_text_index))
            table.add_row("Search Page Size", str(settings.search_page_size))
            table.add_row("Default Radius (km)", str(settings.default_radius_km))

            console.print(table)
        finally:
            await engine.store.close()

    asyncio.run(_status())


@app.command(name="ensure-indexes")
def ensure_indexes():
    """
    Create or verify every index used by search and listings.
    """

    async def _ensure():
        engine = await _open_engine()
        try:
            with console.status("[bold green]Creating indexes...[/bold green]"):
                names = await engine.store.ensure_indexes()
                await engine.refresh_capabilities()
        except BarterSearchError as e:
            console.print(f"[red]✗ {e.message}: {e.details}[/red]")
            raise typer.Exit(1)
        except PyMongoError as e:
            console.print(f"[red]✗ MongoDB error: {e}[/red]")
            raise typer.Exit(1)
        finally:
            await engine.store.close()

        for name in names:
            console.print(f"[green]✓ {name}[/green]")

    asyncio.run(_ensure())


@app.command(name="geo-index")
def geo_index():
    """
    Create the 2dsphere index on item coordinates. Safe to repeat.
    """

    async def _create():
        engine = await _open_engine()
        try:
            name = await engine.create_geo_index()
        except BarterSearchError as e:
            console.print(f"[red]✗ {e.message}: {e.details}[/red]")
            raise typer.Exit(1)
        except PyMongoError as e:
            console.print(f"[red]✗ MongoDB error: {e}[/red]")
            raise typer.Exit(1)
        finally:
            await engine.store.close()

        console.print(f"[green]✓ Geospatial index '{name}' created/verified[/green]")

    asyncio.run(_create())


@app.command()
def search(
    query: str = typer.Argument("", help="Free text to search in title and description"),
    category: str | None = typer.Option(None, "--category", "-c", help="Exact category"),
    condition: str | None = typer.Option(None, "--condition", help="Exact condition"),
    location: str | None = typer.Option(None, "--location", "-l", help="Location substring"),
    lat: float | None = typer.Option(None, "--lat", help="Search center latitude"),
    lng: float | None = typer.Option(None, "--lng", help="Search center longitude"),
    distance: float | None = typer.Option(None, "--distance", "-d", help="Radius in km"),
    sort: str = typer.Option("recent", "--sort", "-s", help="recent|oldest|az|za|nearest|relevance"),
    page: int = typer.Option(1, "--page", "-p", help="Page number"),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Page size"),
):
    """
    Run a single item search and print one page of results.
    """
    params = {
        "q": query,
        "category": category,
        "condition": condition,
        "location": location,
        "lat": lat,
        "lng": lng,
        "distance": distance,
        "sort": sort,
        "page": page,
        "limit": limit,
    }
    params = {k: str(v) for k, v in params.items() if v not in (None, "")}

    async def _search():
        engine = await _open_engine()
        try:
            await engine.refresh_capabilities()
            with console.status("[bold green]Searching...[/bold green]"):
                envelope = await engine.search_items(params)
        except BarterSearchError as e:
            console.print(f"[red]✗ {e.message}[/red]")
            raise typer.Exit(1)
        except PyMongoError as e:
            console.print(f"[red]✗ MongoDB error: {e}[/red]")
            raise typer.Exit(1)
        finally:
            await engine.store.close()

        table = Table(title=f"Items ({envelope.count} of {envelope.total})", show_header=True)
        table.add_column("Title", style="cyan")
        table.add_column("Category", style="green")
        table.add_column("Condition")
        table.add_column("Location")
        table.add_column("Owner", style="yellow")
        if envelope.geospatial is not None:
            table.add_column("km", justify="right")

        for item in envelope.data:
            owner = item.get("user")
            row = [
                str(item.get("title", "")),
                str(item.get("category", "")),
                str(item.get("condition", "")),
                str(item.get("location", "")),
                owner.get("name", "") if isinstance(owner, dict) else str(owner or ""),
            ]
            if envelope.geospatial is not None:
                row.append(str(item.get("distance", "")))
            table.add_row(*row)

        console.print(table)
        pagination = envelope.pagination
        console.print(
            Panel(
                f"page {pagination.page} of {pagination.pages}, limit {pagination.limit}"
                + (f" | next: {pagination.next.page}" if pagination.next else "")
                + (f" | prev: {pagination.prev.page}" if pagination.prev else ""),
                style="blue",
            )
        )

    asyncio.run(_search())


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """
    Serve the HTTP API with uvicorn.
    """
    import uvicorn

    uvicorn.run("bartersearch.api.main:app", host=host, port=port, reload=reload)


def run_cli():
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(0)


if __name__ == "__main__":
    run_cli()
