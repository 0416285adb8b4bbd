"""CLI commands for the Notion exporter."""

import json
import logging
import sys
from collections import Counter
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import click
import structlog

from docexport import __version__
from docexport.config import ConfigError, ConfigLoader, ExportConfig
from docexport.convert import ImageStore, MarkdownConverter
from docexport.observability.logging import bind_run_context, configure_logging
from docexport.processor import ItemProcessor
from docexport.reporter import (
    RunReporter,
    SqliteReportingSurface,
    StatusPanel,
    format_duration,
)
from docexport.scheduler import (
    BatchScheduler,
    RunAlreadyActiveError,
    StoreContinuationScheduler,
    TickOutcome,
    TickStatus,
    drive,
)
from docexport.source import NotionSourceClient, SourceError
from docexport.store import ProgressStore, StateStore


logger = structlog.get_logger()

COMPONENT_CLI = "cli"


@dataclass
class CliOptions:
    """Options shared by every command."""

    config_path: Path | None
    state_path: Path | None
    json_logs: bool
    verbose: bool


@dataclass
class Components:
    """Wired exporter components for one command invocation."""

    config: ExportConfig
    store: StateStore
    progress: ProgressStore
    continuations: StoreContinuationScheduler
    surface: SqliteReportingSurface
    source: NotionSourceClient
    engine: MarkdownConverter
    scheduler: BatchScheduler


def _fail(message: str, details: list[str] | None = None) -> NoReturn:
    """Print an error to stderr and exit with status 1."""
    click.echo(f"Error: {message}", err=True)
    for line in details or []:
        click.echo(f"  - {line}", err=True)
    sys.exit(1)


def _load_config(options: CliOptions, *, require_source: bool) -> tuple[ExportConfig, str]:
    """Load configuration or exit.

    Returns:
        Tuple of (config, API key).
    """
    loader = ConfigLoader()
    try:
        config = loader.load(options.config_path, require_source=require_source)
    except ConfigError as e:
        _fail("configuration is invalid", e.describe())

    if options.state_path is not None:
        config = config.model_copy(update={"state_path": options.state_path})
    return config, loader.api_key or ""


@contextmanager
def _open_components(
    options: CliOptions, *, require_source: bool = True
) -> Generator[Components]:
    """Wire the exporter over the SQLite state store.

    Control commands load without source settings; they never reach the
    source client or the converter.
    """
    level = logging.DEBUG if options.verbose else logging.INFO
    configure_logging(level=level, json_format=options.json_logs)

    config, api_key = _load_config(options, require_source=require_source)

    store = StateStore(config.state_path)
    store.connect()
    source = NotionSourceClient(
        api_key,
        config.source.database_id or "",
        page_size=config.source.page_size,
        timeout_seconds=config.source.timeout_seconds,
        retry_policy=config.source.retry_policy,
    )
    output_dir = config.output_dir or Path.cwd()
    images = (
        ImageStore(output_dir, timeout_seconds=config.source.timeout_seconds)
        if config.download_images
        else None
    )
    try:
        progress = ProgressStore(store)
        continuations = StoreContinuationScheduler(store)
        surface = SqliteReportingSurface(store, max_rows=config.result_log_max_rows)
        engine = MarkdownConverter(output_dir, images=images)
        scheduler = BatchScheduler(
            config=config,
            progress=progress,
            source=source,
            engine=engine,
            continuations=continuations,
            reporter=RunReporter(surface),
        )
        yield Components(
            config=config,
            store=store,
            progress=progress,
            continuations=continuations,
            surface=surface,
            source=source,
            engine=engine,
            scheduler=scheduler,
        )
    finally:
        if images is not None:
            images.close()
        source.close()
        store.close()


def _echo_outcome(outcome: TickOutcome) -> None:
    """Print a tick outcome."""
    if outcome.status == TickStatus.CONTINUED:
        click.echo(
            f"Processed chunk {outcome.cursor}: "
            f"{outcome.processed_count}/{outcome.total_count} items"
        )
    elif outcome.status == TickStatus.COMPLETED and outcome.summary is not None:
        click.echo(f"Run complete: {outcome.summary.describe()}")
    else:
        click.echo(f"Nothing to do ({outcome.status.value})")


def _echo_panel(panel: StatusPanel) -> None:
    """Print the status panel."""
    click.echo(f"Run: {panel.run_id or '-'}")
    click.echo(f"Progress: {panel.processed} / {panel.total} ({panel.percent}%)")
    click.echo(f"          {panel.progress_bar}")
    if panel.message:
        click.echo(f"Message: {panel.message}")
    click.echo(f"Updated: {panel.updated_at.isoformat()}")
    if panel.latest_results:
        click.echo("Latest results:")
        for result in panel.latest_results:
            click.echo(f"  [{result.status.value}] {result.title}: {result.message}")


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to the YAML configuration file.",
)
@click.option(
    "--state",
    "state_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to the SQLite state database (overrides config).",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=True,
    help="Use JSON format for logs (default: true).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path | None,
    state_path: Path | None,
    json_logs: bool,
    verbose: bool,
) -> None:
    """Incremental, resumable Notion database exporter."""
    ctx.obj = CliOptions(
        config_path=config_path,
        state_path=state_path,
        json_logs=json_logs,
        verbose=verbose,
    )


@cli.command()
@click.option(
    "--full",
    is_flag=True,
    help="Export every page, ignoring change detection.",
)
@click.pass_obj
def start(options: CliOptions, full: bool) -> None:
    """Start a new export run and process its first chunk."""
    with _open_components(options) as components:
        try:
            run = components.scheduler.start(force=full)
        except RunAlreadyActiveError as e:
            _fail(str(e))
        except SourceError as e:
            _fail(f"could not list the Notion database: {e}")

        if run is None:
            click.echo("No pages found in the database; nothing to export.")
            return

        bind_run_context(run.run_id)
        click.echo(
            f"Started run {run.run_id}: {run.total_count} pages in "
            f"{run.chunk_count} chunks"
        )
        _echo_outcome(components.scheduler.tick(run.run_id))


@cli.command()
@click.option("--token", "run_token", default=None, help="Run token to continue.")
@click.option(
    "--now",
    "ignore_due",
    is_flag=True,
    help="Tick even if the armed continuation is not due yet.",
)
@click.pass_obj
def tick(options: CliOptions, run_token: str | None, ignore_due: bool) -> None:
    """Process the next chunk of the active run.

    Meant to be invoked by a host scheduler (cron). Without --token, the
    armed continuation decides whether a tick is due.
    """
    with _open_components(options) as components:
        if run_token is None:
            pending = components.continuations.pending()
            if pending is not None:
                if not ignore_due and components.continuations.due() is None:
                    click.echo(f"Next tick due at {pending.due_at.isoformat()}")
                    return
                run_token = pending.run_token

        _echo_outcome(components.scheduler.tick(run_token))


@cli.command()
@click.pass_obj
def cancel(options: CliOptions) -> None:
    """Cancel the active run; exported pages are kept."""
    with _open_components(options, require_source=False) as components:
        if components.scheduler.cancel():
            click.echo("Run cancelled.")
        else:
            click.echo("No active run.")


@cli.command("reset-baseline")
@click.confirmation_option(
    prompt="Forget export history so the next run exports every page?"
)
@click.pass_obj
def reset_baseline(options: CliOptions) -> None:
    """Clear change-detection state so the next run exports every page."""
    with _open_components(options, require_source=False) as components:
        components.scheduler.reset_change_detection_baseline()
        click.echo("Change detection baseline reset.")


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@click.pass_obj
def status(options: CliOptions, json_output: bool) -> None:
    """Show the active run and the status panel."""
    with _open_components(options, require_source=False) as components:
        run = components.scheduler.status()
        panel = components.surface.get_status_panel()
        pending = components.continuations.pending()
        last_export = components.progress.last_export_finished_at()

        if json_output:
            output = {
                "active_run": (
                    {
                        "run_id": run.run_id,
                        "cursor": run.cursor,
                        "chunk_count": run.chunk_count,
                        "processed_count": run.processed_count,
                        "total_count": run.total_count,
                        "started_at": run.started_at.isoformat(),
                    }
                    if run
                    else None
                ),
                "panel": panel.model_dump(mode="json") if panel else None,
                "next_tick_due_at": pending.due_at.isoformat() if pending else None,
                "last_export_finished_at": (
                    last_export.isoformat() if last_export else None
                ),
            }
            click.echo(json.dumps(output, indent=2, sort_keys=True))
            return

        if run is None:
            click.echo("No active run.")
        else:
            click.echo(
                f"Active run {run.run_id}: chunk {run.cursor}/{run.chunk_count}, "
                f"{run.processed_count}/{run.total_count} items"
            )
        if pending is not None:
            click.echo(f"Next tick due at {pending.due_at.isoformat()}")
        click.echo(
            f"Last export finished: {last_export.isoformat() if last_export else 'never'}"
        )
        if panel is not None:
            click.echo("")
            _echo_panel(panel)


@cli.command()
@click.option("--limit", type=int, default=50, help="Number of rows to show.")
@click.pass_obj
def results(options: CliOptions, limit: int) -> None:
    """Show recent result log rows with per-status counts."""
    with _open_components(options, require_source=False) as components:
        rows = components.surface.get_result_rows(limit=limit)
        if not rows:
            click.echo("No results logged.")
            return

        for row in rows:
            result = row.result
            click.echo(
                f"{row.logged_at.isoformat()}  [{result.status.value}] "
                f"{result.title}: {result.message}"
            )

        counts = Counter(row.result.status.value for row in rows)
        click.echo("")
        click.echo(
            "Totals: " + ", ".join(f"{name}={count}" for name, count in sorted(counts.items()))
        )

        runs = components.surface.get_recent_runs(limit=1)
        if runs and runs[0].finished_at is not None:
            last = runs[0]
            duration = (last.finished_at - last.started_at).total_seconds()
            click.echo(
                f"Last run {last.run_id}: success={last.success} "
                f"in {format_duration(duration)}"
            )


@cli.command("drive")
@click.option(
    "--full",
    is_flag=True,
    help="Export every page, ignoring change detection.",
)
@click.pass_obj
def drive_command(options: CliOptions, full: bool) -> None:
    """Run an export to completion in this process.

    Starts a run if none is active, then honors each armed continuation,
    sleeping until it is due.
    """
    with _open_components(options) as components:
        scheduler = components.scheduler
        if scheduler.status() is None:
            try:
                run = scheduler.start(force=full)
            except RunAlreadyActiveError as e:
                _fail(str(e))
            except SourceError as e:
                _fail(f"could not list the Notion database: {e}")
            if run is None:
                click.echo("No pages found in the database; nothing to export.")
                return
            bind_run_context(run.run_id)
            click.echo(f"Started run {run.run_id}: {run.total_count} pages")

        outcome = drive(scheduler, components.continuations, on_tick=_echo_outcome)
        if outcome.status != TickStatus.COMPLETED:
            _fail(f"run stopped before completion ({outcome.status.value})")


@cli.command("export-first")
@click.pass_obj
def export_first(options: CliOptions) -> None:
    """Export only the first page of the database (debugging aid)."""
    log = logger.bind(component=COMPONENT_CLI, command="export-first")
    with _open_components(options) as components:
        try:
            items = components.source.list_work_items()
        except SourceError as e:
            _fail(f"could not list the Notion database: {e}")

        if not items:
            click.echo("No pages found in the database.")
            return

        item = items[0]
        log.info("export_first_started", item_id=item.id, title=item.title)
        processor = ItemProcessor(
            components.source, components.engine, components.progress
        )
        result = processor.process_one(item)
        click.echo(f"[{result.status.value}] {result.title}: {result.message}")
        if result.artifact_ref:
            click.echo(f"  -> {result.artifact_ref}")


@cli.command("prune-images")
@click.option(
    "--days",
    type=click.IntRange(min=0),
    default=30,
    show_default=True,
    help="Remove cached images not refreshed for this many days.",
)
@click.pass_obj
def prune_images(options: CliOptions, days: int) -> None:
    """Delete cached page images that are no longer refreshed."""
    level = logging.DEBUG if options.verbose else logging.INFO
    configure_logging(level=level, json_format=options.json_logs)
    config, _ = _load_config(options, require_source=False)

    with ImageStore(config.output_dir or Path.cwd()) as images:
        removed = images.prune(days)
    click.echo(f"Removed {removed} cached image(s).")


@cli.command()
@click.pass_obj
def validate(options: CliOptions) -> None:
    """Validate configuration and required settings without exporting."""
    configure_logging(json_format=False)
    config, _ = _load_config(options, require_source=True)

    click.echo("Configuration is valid!")
    click.echo(f"  Database: {config.source.database_id}")
    click.echo(f"  Output dir: {config.output_dir}")
    click.echo(f"  State: {config.state_path}")
    click.echo(f"  Chunk size: {config.chunk_size}")
    click.echo(f"  Continuation delay: {config.continuation_delay_seconds}s")
