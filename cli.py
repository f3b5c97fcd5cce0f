#!/usr/bin/env python3
"""
GeoNotes CLI.

Primary entry point for all application operations.
Use --service to select what to run.

Usage:
    python cli.py --help
    python cli.py --service notes
    python cli.py --service add-note --lat 24.58 --lon 73.71 --text "Quiet lakeside bench"
    python cli.py --service nearby --lat 24.58 --lon 73.71 --radius 2
    python cli.py --service search --query "Udaipur"
    python cli.py --service test --test-type unit
"""

import asyncio
import subprocess
import sys
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from geonotes.core.logging import get_logger, setup_logging

console = Console()

SERVICES = [
    "info", "config", "init-db", "notes", "add-note", "delete-note", "nearby",
    "moderate", "search", "suggest", "reverse", "recents", "test",
]


def validate_project_root() -> Path:
    """Validate that we're running from the project root."""
    if not (PROJECT_ROOT / ".project_root").exists():
        click.echo(
            click.style("Error: .project_root not found. Run from project root.", fg="red"),
            err=True,
        )
        sys.exit(1)
    return PROJECT_ROOT


def _fail(message: str) -> None:
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    sys.exit(1)


def _require_coordinates(lat: float | None, lon: float | None):
    from pydantic import ValidationError

    from geonotes.schemas.geo import Coordinates

    if lat is None or lon is None:
        _fail("--lat and --lon are required for this service.")
    try:
        return Coordinates(latitude=lat, longitude=lon)
    except ValidationError:
        _fail("Coordinates out of range.")


@click.command()
@click.option(
    "--service", "-s",
    type=click.Choice(SERVICES),
    default="info",
    help="Service or command to run.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output (INFO level logging).")
@click.option("--debug", "-d", is_flag=True, help="Enable debug output (DEBUG level logging).")
@click.option("--lat", type=float, default=None, help="Latitude for pin, nearby and reverse.")
@click.option("--lon", type=float, default=None, help="Longitude for pin, nearby and reverse.")
@click.option("--radius", type=float, default=None, help="Nearby radius in km (spatial.yaml default).")
@click.option("--text", "-t", default=None, help="Note text (add-note, moderate).")
@click.option("--note-id", default=None, help="Note ID (delete-note).")
@click.option("--query", "-q", default=None, help="Place query (search, suggest).")
@click.option("--owner", default=None, help="Owner ID (application.yaml default).")
@click.option(
    "--test-type",
    type=click.Choice(["all", "unit", "integration"]),
    default="all",
    help="Test type to run.",
)
@click.option("--coverage", is_flag=True, help="Run tests with coverage.")
def main(
    service: str,
    verbose: bool,
    debug: bool,
    lat: float | None,
    lon: float | None,
    radius: float | None,
    text: str | None,
    note_id: str | None,
    query: str | None,
    owner: str | None,
    test_type: str,
    coverage: bool,
) -> None:
    """
    GeoNotes CLI.

    Use --service to select what to run. Every service is one-shot.

    \b
    Examples:
        python cli.py --service info
        python cli.py --service config
        python cli.py --service init-db
        python cli.py --service notes
        python cli.py --service add-note --lat 24.58 --lon 73.71 -t "Quiet lakeside bench"
        python cli.py --service delete-note --note-id <id>
        python cli.py --service nearby --lat 24.58 --lon 73.71 --radius 2
        python cli.py --service moderate -t "check this text"
        python cli.py --service search -q "City Palace"
        python cli.py --service suggest -q "Udai"
        python cli.py --service reverse --lat 24.58 --lon 73.71
        python cli.py --service recents
        python cli.py --service test --test-type unit --coverage
    """
    validate_project_root()

    if debug:
        log_level = "DEBUG"
    elif verbose:
        log_level = "INFO"
    else:
        log_level = "WARNING"

    setup_logging(level=log_level, format_type="console")

    structlog.contextvars.bind_contextvars(source="cli")

    logger = get_logger(__name__)

    logger.debug("CLI invoked", extra={"service": service, "log_level": log_level})

    if service == "info":
        show_info(logger)
    elif service == "config":
        show_config(logger)
    elif service == "init-db":
        asyncio.run(init_db(logger))
    elif service == "notes":
        asyncio.run(list_notes(logger, owner))
    elif service == "add-note":
        coordinates = _require_coordinates(lat, lon)
        asyncio.run(add_note(logger, coordinates, text or "", owner))
    elif service == "delete-note":
        if not note_id:
            _fail("--note-id is required for delete-note.")
        asyncio.run(delete_note(logger, note_id, owner))
    elif service == "nearby":
        coordinates = _require_coordinates(lat, lon)
        asyncio.run(show_nearby(logger, coordinates, radius, owner))
    elif service == "moderate":
        asyncio.run(moderate_text(logger, text or ""))
    elif service == "search":
        asyncio.run(search_places(logger, query or ""))
    elif service == "suggest":
        asyncio.run(suggest_places(logger, query or ""))
    elif service == "reverse":
        coordinates = _require_coordinates(lat, lon)
        asyncio.run(reverse_lookup(logger, coordinates))
    elif service == "recents":
        show_recents(logger)
    elif service == "test":
        run_tests(logger, test_type, coverage)


def _notes_table(title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim")
    table.add_column("Created")
    table.add_column("Lat", justify="right")
    table.add_column("Lon", justify="right")
    table.add_column("Owner")
    table.add_column("Text")
    return table


def _note_row(note) -> list[str]:
    from geonotes.services.moderation import sanitize_note_for_display

    return [
        note.id,
        note.created_at.strftime("%Y-%m-%d %H:%M"),
        f"{note.latitude:.5f}",
        f"{note.longitude:.5f}",
        note.owner_id,
        sanitize_note_for_display(note.text or "", max_length=60),
    ]


async def init_db(logger) -> None:
    """Create the notes table."""
    from geonotes.core.database import create_tables, dispose_engine

    try:
        await create_tables()
    finally:
        await dispose_engine()
    console.print("[green]Database ready.[/green]")
    logger.info("Database initialized")


async def list_notes(logger, owner: str | None) -> None:
    """List every note, newest first."""
    from geonotes.main import create_app

    async with create_app(owner_id=owner) as app:
        table = _notes_table(f"Notes ({len(app.store)})")
        for note in app.store:
            table.add_row(*_note_row(note))
        console.print(table)
    logger.debug("Notes listed")


async def add_note(logger, coordinates, text: str, owner: str | None) -> None:
    """Drop a pin, write the note and save it through the moderation gate."""
    from geonotes.main import create_app

    async with create_app(owner_id=owner) as app:
        app.pin.drop(coordinates)
        app.pin.start_note()
        outcome = await app.pin.save(text)

    if outcome.saved:
        console.print(f"[green]Saved note {outcome.note.id}[/green]")
        logger.info("Note added", extra={"note_id": outcome.note.id})
        return

    console.print(f"[red]Not saved ({outcome.status}): {outcome.reason}[/red]")
    sys.exit(1)


async def delete_note(logger, note_id: str, owner: str | None) -> None:
    """Delete one of the owner's notes."""
    from geonotes.core.exceptions import PersistenceError
    from geonotes.main import create_app

    async with create_app(owner_id=owner) as app:
        try:
            await app.store.delete(note_id)
        except PersistenceError as e:
            logger.warning("Delete failed", extra={"note_id": note_id, "error": e.message})
            _fail(f"Could not delete note: {e.message}")
    console.print(f"[green]Deleted note {note_id}[/green]")


async def show_nearby(logger, coordinates, radius: float | None, owner: str | None) -> None:
    """Notes within the radius of a dropped pin, closest first."""
    from geonotes.main import create_app
    from geonotes.schemas.geo import NoLocationSelected

    async with create_app(owner_id=owner) as app:
        app.pin.drop(coordinates)
        results = app.spatial.nearby_for_pin(app.pin.snapshot(), radius)
        radius_km = radius if radius is not None else app.spatial.default_radius_km

    if isinstance(results, NoLocationSelected):
        console.print(f"[yellow]{results.reason}[/yellow]")
        return

    table = Table(title=f"Nearby notes within {radius_km:g} km of {coordinates.label()}")
    table.add_column("Distance", justify="right")
    table.add_column("ID", style="dim")
    table.add_column("Text")
    for result in results:
        table.add_row(f"{result.distance_km:.3f} km", result.note.id, result.note.text or "")
    console.print(table)
    logger.debug("Nearby displayed", extra={"count": len(results)})


async def moderate_text(logger, text: str) -> None:
    """Run text through the configured moderation gate."""
    from geonotes.services.moderation import create_moderation_gate

    gate = create_moderation_gate()
    result = await gate.validate(text)
    if result.allowed:
        console.print(f"[green]Allowed[/green] (strategy: {gate.name})")
    else:
        console.print(f"[red]Rejected[/red] at {result.stage}: {result.reason}")
    logger.debug("Moderation checked", extra={"allowed": result.allowed})


async def search_places(logger, query: str) -> None:
    """Explicit place search; records the search in recent history."""
    from geonotes.main import create_app

    async with create_app() as app:
        results = await app.search.search_locations(query, app.viewport)

    if not results:
        console.print("[yellow]No results.[/yellow]")
        return

    table = Table(title=f"Results for {query!r}")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Lat", justify="right")
    table.add_column("Lon", justify="right")
    table.add_column("Address")
    for result in results:
        table.add_row(result.name, result.type, f"{result.lat:.5f}", f"{result.lon:.5f}", result.display_name)
    console.print(table)
    logger.debug("Search displayed", extra={"count": len(results)})


async def suggest_places(logger, query: str) -> None:
    """Type-ahead suggestions for a partial query."""
    from geonotes.main import create_app

    async with create_app() as app:
        suggestions = await app.search.get_suggestions(query)

    for suggestion in suggestions or []:
        console.print(f"[bold]{suggestion.name}[/bold]  [dim]{suggestion.display_name}[/dim]")
    if not suggestions:
        console.print("[yellow]No suggestions.[/yellow]")


async def reverse_lookup(logger, coordinates) -> None:
    """Describe a coordinate pair."""
    from geonotes.main import create_app

    async with create_app() as app:
        app.pin.drop(coordinates)
        label = await app.describe_pin()
    console.print(Panel(label, title=coordinates.label()))


def show_recents(logger) -> None:
    """Show the recent-search history."""
    from geonotes.core.config import find_project_root, get_app_config
    from geonotes.repositories.local_state import LocalStateRepository
    from geonotes.services.recent_searches import RecentSearches

    config = get_app_config().geocoder.recent_searches
    recents = RecentSearches(
        LocalStateRepository(find_project_root() / config.state_path),
        storage_key=config.storage_key,
        max_stored=config.max_stored,
        max_displayed=config.max_displayed,
    )
    if not recents.displayed:
        console.print("[dim]No recent searches.[/dim]")
        return
    for entry in recents.displayed:
        sublabel = f"  [dim]{entry.sublabel}[/dim]" if entry.sublabel else ""
        console.print(f"{entry.label}{sublabel}")
    logger.debug("Recents displayed", extra={"count": len(recents.displayed)})


def show_config(logger) -> None:
    """Display loaded configuration."""
    try:
        from geonotes.core.config import get_app_config

        app_config = get_app_config()
        sections = {
            "Application": app_config.application,
            "Database": app_config.database,
            "Logging": app_config.logging,
            "Features": app_config.features,
            "Moderation": app_config.moderation,
            "Geocoder": app_config.geocoder,
            "Spatial": app_config.spatial,
            "Realtime": app_config.realtime,
            "Concurrency": app_config.concurrency,
        }

        for title, section in sections.items():
            table = Table(title=f"{title} Settings (from YAML)", show_header=False)
            table.add_column("Key", style="cyan")
            table.add_column("Value")
            for key, value in section.model_dump().items():
                table.add_row(key, str(value))
            console.print(table)

        logger.info("Configuration displayed successfully")

    except Exception as e:
        logger.error("Failed to load configuration", extra={"error": str(e)})
        _fail(f"Error loading configuration: {e}")


def run_tests(logger, test_type: str, coverage: bool) -> None:
    """Run the test suite."""
    logger.info("Running tests", extra={"type": test_type, "coverage": coverage})

    cmd = [sys.executable, "-m", "pytest"]

    if test_type == "unit":
        cmd.append("tests/unit")
    elif test_type == "integration":
        cmd.append("tests/integration")
    else:
        cmd.append("tests/")

    cmd.append("-v")

    if coverage:
        cmd.extend(["--cov=geonotes", "--cov-report=term-missing"])

    click.echo(f"Running: {' '.join(cmd)}\n")

    try:
        result = subprocess.run(cmd)
        sys.exit(result.returncode)
    except FileNotFoundError:
        logger.error("pytest not found. Install with: pip install pytest")
        sys.exit(1)


def show_info(logger) -> None:
    """Display application information."""
    try:
        from geonotes.core.config import get_app_config

        application = get_app_config().application
        console.print(Panel(
            f"[bold]{application.name}[/bold]\n"
            f"Version: {application.version}\n"
            f"Description: {application.description}",
            title="Application Info",
        ))
    except Exception as e:
        logger.error("Failed to load application configuration", extra={"error": str(e)})
        _fail("Could not load application.yaml configuration.")

    click.echo()
    click.echo("Services (--service):")
    click.echo("  info         Show this information")
    click.echo("  config       Display configuration")
    click.echo("  init-db      Create the notes table")
    click.echo("  notes        List all notes")
    click.echo("  add-note     Pin a note at --lat/--lon with --text")
    click.echo("  delete-note  Delete one of your notes by --note-id")
    click.echo("  nearby       Notes within --radius km of --lat/--lon")
    click.echo("  moderate     Check --text against the moderation gate")
    click.echo("  search       Search places for --query")
    click.echo("  suggest      Type-ahead suggestions for --query")
    click.echo("  reverse      Describe --lat/--lon")
    click.echo("  recents      Show recent searches")
    click.echo("  test         Run test suite")
    click.echo()
    click.echo("Options:")
    click.echo("  --verbose, -v  Enable INFO level logging")
    click.echo("  --debug, -d    Enable DEBUG level logging")

    logger.debug("Info displayed")


if __name__ == "__main__":
    main()
