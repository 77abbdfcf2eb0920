"""Command line entry point: ``image-sync pull|push|sync|status|logs|serve``."""
import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
import uvicorn
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import Settings
from .deps import build_orchestrator
from .models import Strategy, SyncResult, SyncStatus
from .storage import CatalogStore
from .sync.orchestrator import SyncOrchestrator
from .telemetry.log import setup_logging
from .utils.errors import AppError
from .utils.timestamps import format_timestamp

T = TypeVar("T")

app = typer.Typer(
    help="""image-sync - keep a local folder and a remote image catalog in step

[bold green]Sync:[/bold green] pull, push, sync
[bold magenta]History:[/bold magenta] status, logs
[bold blue]Service:[/bold blue] serve
""",
    rich_markup_mode="rich",
)

console = Console()

STRATEGY_OPTION = typer.Option(
    None, "--strategy", "-s", case_sensitive=False, help="Conflict strategy (defaults to configured)"
)
JSON_OPTION = typer.Option(False, "--json", help="Output results as JSON")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        console.print(f"image-sync version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    folder: Optional[Path] = typer.Option(None, "--folder", "-f", help="Local sync folder"),
    remote_url: Optional[str] = typer.Option(None, "--remote-url", help="Remote catalog API base URL"),
    db_path: Optional[Path] = typer.Option(None, "--db", help="Catalog database file"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True, help="Show version and exit"
    ),
) -> None:
    """image-sync - two-way sync between a local folder and a remote image catalog."""
    overrides = {
        "sync_folder": folder,
        "remote_base_url": remote_url,
        "db_path": db_path,
        "log_level": log_level,
    }
    try:
        settings = Settings(**{key: value for key, value in overrides.items() if value is not None})
    except ValidationError as exc:
        console.print(f"[red]Invalid configuration:[/red] {exc}")
        raise typer.Exit(2)
    setup_logging(settings.log_level, settings.log_format)
    ctx.obj = settings


def _run(settings: Settings, operation: Callable[[SyncOrchestrator], Awaitable[T]]) -> T:
    async def runner() -> T:
        orchestrator, remote = build_orchestrator(settings)
        try:
            return await operation(orchestrator)
        finally:
            await remote.aclose()

    try:
        return asyncio.run(runner())
    except AppError as exc:
        console.print(f"[red]{exc.__class__.__name__}:[/red] {exc.message}")
        raise typer.Exit(1)


def _print_result(result: SyncResult) -> None:
    lists = result.item_lists
    table = Table(title=f"{result.direction.value.title()} ({result.strategy.label})")
    table.add_column("Outcome")
    table.add_column("Count", justify="right")
    table.add_column("Items")
    table.add_row("Transferred", str(len(lists.transferred)), ", ".join(lists.transferred))
    table.add_row("Updated", str(len(lists.updated)), ", ".join(lists.updated))
    table.add_row("Deleted", str(len(lists.deleted)), ", ".join(lists.deleted))
    table.add_row(
        "Conflicts resolved",
        str(result.conflicts_resolved),
        ", ".join(detail.name for detail in result.conflict_details),
    )
    table.add_row(
        "Failed",
        str(len(lists.failed)),
        ", ".join(f"{outcome.name} ({outcome.error})" for outcome in lists.failed),
    )
    console.print(table)
    if result.status is SyncStatus.CANCELLED:
        console.print("[yellow]Pass was cancelled before every item ran[/yellow]")


def _finish(results: list[SyncResult], payload: Any, to_json: bool) -> None:
    if to_json:
        typer.echo(json.dumps(payload, indent=2))
    else:
        for result in results:
            _print_result(result)
    if any(result.failed_count for result in results):
        raise typer.Exit(1)


@app.command()
def pull(
    ctx: typer.Context,
    strategy: Optional[Strategy] = STRATEGY_OPTION,
    to_json: bool = JSON_OPTION,
):
    """[bold green]Sync[/bold green]: Bring remote changes into the local folder."""
    settings: Settings = ctx.obj
    result = _run(settings, lambda orchestrator: orchestrator.pull(strategy or settings.strategy))
    _finish([result], result.to_dict(), to_json)


@app.command()
def push(
    ctx: typer.Context,
    strategy: Optional[Strategy] = STRATEGY_OPTION,
    to_json: bool = JSON_OPTION,
):
    """[bold green]Sync[/bold green]: Send local changes to the remote catalog."""
    settings: Settings = ctx.obj
    result = _run(settings, lambda orchestrator: orchestrator.push(strategy or settings.strategy))
    _finish([result], result.to_dict(), to_json)


@app.command()
def sync(
    ctx: typer.Context,
    strategy: Optional[Strategy] = STRATEGY_OPTION,
    to_json: bool = JSON_OPTION,
):
    """[bold green]Sync[/bold green]: Pull and/or push as the strategy requires."""
    settings: Settings = ctx.obj
    run = _run(settings, lambda orchestrator: orchestrator.sync(strategy or settings.strategy))
    payload = {
        "strategy": run.strategy.value,
        "pull": run.pull.to_dict() if run.pull else None,
        "push": run.push.to_dict() if run.push else None,
    }
    _finish(run.results, payload, to_json)


@app.command()
def status(ctx: typer.Context, to_json: bool = JSON_OPTION):
    """[bold magenta]History[/bold magenta]: Show item counts and the last successful pass."""
    settings: Settings = ctx.obj
    summary = CatalogStore.open(settings.db_path).query_status()
    if to_json:
        typer.echo(
            json.dumps(
                {
                    "local_count": summary.local_count,
                    "remote_count": summary.remote_count,
                    "last_sync_time": format_timestamp(summary.last_sync_time),
                }
            )
        )
        return

    table = Table(title="Sync status")
    table.add_column("Local items", justify="right")
    table.add_column("Remote items", justify="right")
    table.add_column("Last sync")
    table.add_row(
        str(summary.local_count),
        str(summary.remote_count),
        format_timestamp(summary.last_sync_time) or "never",
    )
    console.print(table)


@app.command()
def logs(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Number of entries to show"),
    to_json: bool = JSON_OPTION,
):
    """[bold magenta]History[/bold magenta]: Show recent sync log entries, newest first."""
    settings: Settings = ctx.obj
    entries = CatalogStore.open(settings.db_path).query_logs(limit)
    if to_json:
        typer.echo(json.dumps([entry.to_dict() for entry in entries], indent=2))
        return
    if not entries:
        console.print("No sync history yet.")
        return

    table = Table(title="Sync log")
    for column in ("Time", "Direction", "Strategy", "Status"):
        table.add_column(column)
    for column in ("Transferred", "Updated", "Deleted", "Conflicts", "Failed"):
        table.add_column(column, justify="right")
    for entry in entries:
        counts = entry.counts
        table.add_row(
            format_timestamp(entry.timestamp),
            entry.direction.value,
            entry.strategy.label,
            entry.status.value,
            str(counts["transferred"]),
            str(counts["updated"]),
            str(counts["deleted"]),
            str(counts["conflicts_resolved"]),
            str(counts["failed"]),
        )
    console.print(table)


@app.command()
def serve(ctx: typer.Context):
    """[bold blue]Service[/bold blue]: Run the HTTP API (and the scheduler, when enabled)."""
    from .main import create_app

    settings: Settings = ctx.obj
    uvicorn.run(create_app(settings), host=settings.app_host, port=settings.app_port)
