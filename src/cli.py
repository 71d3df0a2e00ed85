"""CLI interface for fishbowl."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Annotated

import typer
from pydantic import BaseModel
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from fishbowl.analysis import (
    AnalysisCompleted,
    AnalysisEvent,
    AnalysisFailed,
    AnalysisOrchestrator,
    AnalysisScheduler,
)
from fishbowl.codec import encode_fenced
from fishbowl.config import FishbowlConfig, load_config, merge_cli_overrides
from fishbowl.entries import FileEntryStore
from fishbowl.errors import FishbowlError
from fishbowl.gateway import AvailabilityMonitor
from fishbowl.themes import Theme

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="fishbowl",
    help="Analyze your journal with a local model and track recurring themes.",
)

console = Console()


class Target(StrEnum):
    """Analysis kinds that can be triggered by hand."""

    DAILY = "daily"
    WEEKLY = "weekly"
    THEMES = "themes"


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from fishbowl import __version__

        console.print(f"fishbowl {__version__}")
        raise typer.Exit()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        format="%(message)s",
        datefmt="[%X]",
        level=level.upper(),
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to a fishbowl TOML config file."),
    ] = None,
    directory: Annotated[
        Path | None,
        typer.Option("--dir", "-d", help="Journal directory (thoughts and analysis)."),
    ] = None,
    model: Annotated[
        str | None,
        typer.Option("--model", "-m", help="Ollama model name, e.g. gemma3:4b."),
    ] = None,
    url: Annotated[
        str | None,
        typer.Option("--url", help="Ollama base URL (loopback only)."),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Logging level (DEBUG, INFO, WARNING)."),
    ] = None,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Fishbowl - journal analysis with a local model."""
    config = merge_cli_overrides(
        load_config(config_path),
        directory=str(directory) if directory else None,
        model=model,
        url=url,
        log_level=log_level,
    )
    _setup_logging(config.logging.level)
    ctx.obj = config


def _config(ctx: typer.Context) -> FishbowlConfig:
    return ctx.obj if isinstance(ctx.obj, FishbowlConfig) else load_config()


def _orchestrator(ctx: typer.Context) -> AnalysisOrchestrator:
    return AnalysisOrchestrator.from_config(_config(ctx))


# -- Rendering ---------------------------------------------------------------


def _print_result(result: BaseModel) -> None:
    for name, value in result.model_dump().items():
        title = name.replace("_", " ").capitalize()
        if isinstance(value, list):
            if not value:
                continue
            console.print(f"[bold]{title}[/bold]")
            for item in value:
                console.print(f"  - {item}")
        elif value:
            console.print(f"[bold]{title}[/bold]\n  {value}")


def _themes_table(themes: list[Theme], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Theme", style="bold")
    table.add_column("Mentions", justify="right")
    table.add_column("Activity")
    table.add_column("Last mentioned")
    table.add_column("Summary")
    for theme in themes:
        table.add_row(
            theme.name,
            str(theme.frequency),
            theme.activity_level,
            theme.last_mentioned.strftime("%Y-%m-%d"),
            theme.summary,
        )
    return table


def _report(event: AnalysisEvent, as_json: bool = False) -> None:
    """Print an analysis outcome; failures exit with status 1."""
    if isinstance(event, AnalysisFailed):
        console.print(f"[red]Error:[/red] {escape(event.error.user_message)}")
        raise typer.Exit(1)
    if not isinstance(event, AnalysisCompleted):
        console.print(f"[yellow]Skipped {event.kind} analysis:[/yellow] {event.reason}")
        return

    result = event.result
    if isinstance(result, list):
        console.print(_themes_table(result, "Active themes"))
    elif isinstance(result, BaseModel):
        if as_json:
            console.print(encode_fenced(result), markup=False, highlight=False)
        else:
            _print_result(result)
    console.print(f"[green]{event.kind.replace('_', ' ').capitalize()} analysis complete.[/green]")


# -- Commands ----------------------------------------------------------------


@app.command()
def write(
    ctx: typer.Context,
    text: Annotated[str, typer.Argument(help="The entry text.")],
) -> None:
    """Append an entry to today's journal file."""
    config = _config(ctx)
    store = FileEntryStore(config.storage.thoughts_dir)
    try:
        entry = store.append(text)
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc
    except FishbowlError as exc:
        console.print(f"[red]Error:[/red] {escape(exc.user_message)}")
        raise typer.Exit(1) from exc
    console.print(
        f"[green]Saved entry[/green] ({entry.word_count} words, {entry.timestamp:%Y-%m-%d %H:%M})"
    )


@app.command()
def analyze(
    ctx: typer.Context,
    target: Annotated[Target, typer.Argument(help="Which analysis to run.")],
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Run even if the analysis is not due."),
    ] = False,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the result as a fenced JSON payload."),
    ] = False,
) -> None:
    """Run one kind of analysis now."""
    orchestrator = _orchestrator(ctx)
    checks = {
        Target.DAILY: (orchestrator.is_daily_due, orchestrator.run_daily),
        Target.WEEKLY: (orchestrator.is_weekly_due, orchestrator.run_weekly),
        Target.THEMES: (orchestrator.is_discovery_due, orchestrator.run_theme_discovery),
    }
    is_due, run_now = checks[target]
    if not force and not is_due():
        console.print(
            f"[yellow]{target.capitalize()} analysis is not due.[/yellow] "
            "Use --force to run anyway."
        )
        return
    _report(run_now(), as_json=as_json)


@app.command()
def themes(
    ctx: typer.Context,
    archived: Annotated[
        bool,
        typer.Option("--archived", help="Show archived themes instead."),
    ] = False,
) -> None:
    """List tracked themes by frequency."""
    orchestrator = _orchestrator(ctx)
    if archived:
        items = orchestrator.themes.archived_themes()
        title = "Archived themes"
    else:
        items = orchestrator.themes.active_themes()
        title = "Active themes"
    if not items:
        console.print(f"[yellow]No {title.lower()} yet.[/yellow]")
        return
    console.print(_themes_table(items, title))


@app.command()
def theme(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Theme name (case-insensitive).")],
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the result as a fenced JSON payload."),
    ] = False,
) -> None:
    """Deep analysis of a single theme."""
    _report(_orchestrator(ctx).analyze_theme_in_depth(name), as_json=as_json)


@app.command(name="add-theme")
def add_theme(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Theme name.")],
    description: Annotated[str, typer.Argument(help="What the theme is about.")],
) -> None:
    """Start tracking a theme by hand."""
    try:
        added = _orchestrator(ctx).themes.add_manual(name, description)
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc
    console.print(f"[green]Tracking theme:[/green] {added.name}")


@app.command(name="remove-theme")
def remove_theme(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Theme name (case-insensitive).")],
) -> None:
    """Stop tracking a theme."""
    if not _orchestrator(ctx).themes.remove(name):
        console.print(f"[red]Error:[/red] No active theme named {name}")
        raise typer.Exit(1)
    console.print(f"[green]Removed theme:[/green] {name}")


@app.command()
def suggestions(ctx: typer.Context) -> None:
    """Show suggestions gathered from recent analyses."""
    items = _orchestrator(ctx).suggestions()
    if not items:
        console.print("[yellow]No suggestions yet.[/yellow] Run an analysis first.")
        return
    for item in items:
        console.print(f"  - {item}")


def _when(moment: datetime | None) -> str:
    return moment.strftime("%Y-%m-%d %H:%M") if moment else "never"


@app.command()
def status(
    ctx: typer.Context,
    probe: Annotated[
        bool,
        typer.Option("--probe", help="Also check that the model endpoint answers."),
    ] = False,
) -> None:
    """Show when each analysis last ran and what is due."""
    orchestrator = _orchestrator(ctx)
    snapshot = orchestrator.status()

    table = Table(title="Analysis status")
    table.add_column("Analysis")
    table.add_column("Last run")
    table.add_column("Due")
    rows = [
        ("Daily", snapshot.cadence.last_daily_analysis, snapshot.daily_due),
        ("Weekly", snapshot.cadence.last_weekly_analysis, snapshot.weekly_due),
        ("Theme discovery", snapshot.cadence.last_theme_discovery, snapshot.discovery_due),
    ]
    for label, last, due in rows:
        table.add_row(label, _when(last), "[green]yes[/green]" if due else "no")
    console.print(table)
    console.print(f"Active themes: {snapshot.active_theme_count}")

    if probe:
        gateway = orchestrator.gateway
        available = gateway.probe()
        if available:
            console.print(
                f"[green]Model {gateway.config.name} is available at {gateway.base_url}[/green]"
            )
        else:
            console.print(f"[red]Model unavailable:[/red] {escape(str(gateway.last_error))}")


def _log_event(event: AnalysisEvent) -> None:
    logger.info("%s: %s", type(event).__name__, event.kind)


@app.command()
def run(ctx: typer.Context) -> None:
    """Run the scheduler in the foreground until interrupted."""
    config = _config(ctx)
    orchestrator = AnalysisOrchestrator.from_config(config)
    orchestrator.subscribe(_log_event)
    monitor = AvailabilityMonitor(orchestrator.gateway, interval=config.model.probe_interval)
    scheduler = AnalysisScheduler(orchestrator, config.schedule)

    monitor.start()
    scheduler.start()
    console.print(
        f"[green]Fishbowl running[/green] against {orchestrator.gateway.base_url}. Ctrl-C to stop."
    )
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping...")
    finally:
        scheduler.stop()
        monitor.stop()
