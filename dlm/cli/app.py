"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from dlm import __version__
from dlm.core.processor import JobProcessor
from dlm.core.scheduler import Scheduler
from dlm.exceptions import DlmError
from dlm.models.config import DlmConfig
from dlm.models.job import JobStatus, Priority
from dlm.storage.config_manager import ConfigManager
from dlm.storage.job_store import JobStore
from dlm.utils.structured_logger import StructuredLogger, create_structured_logger

from .formatters import (
    format_error_with_suggestions,
    print_add_summary,
    print_counts_table,
    print_job_detail,
    print_jobs_table,
    print_process_summary,
    print_validation_table,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=False,
        )
    ],
)
log = logging.getLogger("dlm")

app = typer.Typer(
    name="dlm",
    help=(
        "A download manager that queues URLs and hands each one to the"
        " downloader configured for its domain. Use 'dlm <command> --help' for"
        " more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

DEFAULT_CONFIG_FILE = Path("dlm.ini")
DEFAULT_DB_FILE = Path("dlm.db")


@dataclass
class AppState:
    """Options shared by every command, set by the main callback."""

    config_file: Path = DEFAULT_CONFIG_FILE
    db_path: Path | None = None


def _state(ctx: typer.Context) -> AppState:
    if ctx.obj is None:
        ctx.obj = AppState()
    return ctx.obj


def _fail(message: str) -> None:
    console.print(f"[red]✗ {message}[/red]")
    raise typer.Exit(code=1)


def _load_config(state: AppState) -> DlmConfig:
    try:
        return ConfigManager(state.config_file).load_config()
    except DlmError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


def _build_logger(config: DlmConfig | None) -> StructuredLogger:
    if config is not None and config.log_dir_path is not None:
        return create_structured_logger(config.log_dir_path, enable_json=True)
    return create_structured_logger()


def _open_store(
    state: AppState, config: DlmConfig | None, logger: StructuredLogger
) -> JobStore:
    """Opens the job database named by --db/DLM_DB, the config, or the default."""
    if state.db_path is not None:
        db_path = state.db_path
    elif config is not None:
        db_path = config.database_path
    else:
        db_path = DEFAULT_DB_FILE
    try:
        return JobStore(db_path, logger=logger)
    except DlmError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


def _store_only(ctx: typer.Context) -> JobStore:
    """
    Opens the store for commands that never run jobs. The configuration is
    optional for these, so a missing config file falls back to defaults.
    """
    state = _state(ctx)
    config = _load_config(state) if state.config_file.is_file() else None
    return _open_store(state, config, _build_logger(config))


def _build_processor(
    ctx: typer.Context,
) -> tuple[DlmConfig, JobStore, JobProcessor, StructuredLogger]:
    state = _state(ctx)
    config = _load_config(state)
    logger = _build_logger(config)
    store = _open_store(state, config, logger)
    config_manager = ConfigManager(state.config_file)
    processor = JobProcessor(
        store,
        config_manager.load_collections,
        logger=logger,
        add_delay=config.add_delay_seconds,
        fetch_titles=config.fetch_titles,
    )
    return config, store, processor, logger


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    config_file: Path = typer.Option(
        DEFAULT_CONFIG_FILE,
        "--config",
        "-c",
        envvar="DLM_CONFIG",
        help="Path to the INI configuration file.",
    ),
    db_path: Path | None = typer.Option(
        None,
        "--db",
        envvar="DLM_DB",
        help="Path to the job database (overrides the 'database' setting).",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Enable debug logging.",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
):
    """dlm - Download Manager"""
    if version:
        console.print(f"[bold]dlm[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 1:
        log_level = "DEBUG"
    logging.getLogger("dlm").setLevel(log_level)

    ctx.obj = AppState(config_file=config_file, db_path=db_path)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    ctx: typer.Context,
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration file."
    ),
):
    """Create a default configuration file."""
    state = _state(ctx)
    if (
        state.config_file.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    try:
        ConfigManager(state.config_file).save_default_config()
    except DlmError as e:
        _fail(str(e))
    console.print(
        f"[bold green]✓ Configuration saved to '{state.config_file}'[/bold green]"
    )
    console.print("Edit the collections, then try: [cyan]dlm add <URL>[/cyan]")


def _read_urls_from_stdin() -> list[str]:
    """Reads URLs from stdin, one per line."""
    if sys.stdin.isatty():
        console.print(
            "[yellow]⚠️  No input detected on stdin. Please pipe URLs or redirect"
            " a file.[/yellow]"
        )
        console.print(
            "[dim]Examples:[/dim]\n"
            "  [cyan]cat urls.txt | dlm add --stdin[/cyan]\n"
            "  [cyan]dlm add --stdin < urls.txt[/cyan]"
        )
        raise typer.Exit(code=1)

    urls = []
    try:
        for line in sys.stdin:
            line = line.strip()
            if line and not line.startswith("#"):
                urls.append(line)
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️  Input interrupted.[/yellow]")
        raise typer.Exit(code=1) from None
    return urls


@app.command()
def add(
    ctx: typer.Context,
    urls: list[str] | None = typer.Argument(  # noqa: B008
        None, help="One or more URLs to queue."
    ),
    stdin: bool = typer.Option(
        False, "--stdin", help="Also read URLs from standard input, one per line."
    ),
    high: bool = typer.Option(
        False, "--high", help="Queue the URLs with high priority."
    ),
):
    """Add URLs to the download queue."""
    all_urls = list(urls or [])
    if stdin:
        all_urls.extend(_read_urls_from_stdin())
    if not all_urls:
        _fail("No URLs provided. Use: dlm add <URL> or --stdin")

    _, _, processor, logger = _build_processor(ctx)
    priority = Priority.HIGH if high else Priority.NORMAL
    try:
        summary = asyncio.run(processor.add_urls(all_urls, priority=priority))
    except DlmError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    finally:
        logger.close()
    print_add_summary(console, summary)


@app.command()
def dl(
    ctx: typer.Context,
    limit: int = typer.Argument(
        0, help="Maximum number of pending downloads to run (0 = all)."
    ),
):
    """Download pending items now."""
    _, store, processor, logger = _build_processor(ctx)
    try:
        jobs = store.list_by_status(JobStatus.PENDING, limit)
        if not jobs:
            console.print("[dim]No pending downloads found.[/dim]")
            return
        console.print(f"[bold cyan]Processing {len(jobs)} downloads...[/bold cyan]")
        stats = asyncio.run(processor.process_many(jobs))
    except DlmError as e:
        console.print(format_error_with_suggestions(e))
        log.debug("Full traceback:", exc_info=True)
        raise typer.Exit(code=1) from e
    finally:
        logger.close()
    print_process_summary(console, stats)


@app.command()
def count(ctx: typer.Context):
    """Show download counts by status."""
    store = _store_only(ctx)
    print_counts_table(console, store.count_by_status())


def _parse_status(value: str | None) -> JobStatus | None:
    if not value or value == "all":
        return None
    try:
        return JobStatus(value.lower())
    except ValueError:
        choices = ", ".join(s.value for s in JobStatus)
        _fail(f"Unknown status '{value}'. Choose one of: all, {choices}")


@app.command(name="list")
def list_command(
    ctx: typer.Context,
    status: str | None = typer.Option(
        None, "--status", "-s", help="Only show this status (pending, error, ...)."
    ),
    limit: int = typer.Option(50, "--limit", "-n", help="Rows to show (0 = all)."),
    offset: int = typer.Option(0, "--offset", help="Rows to skip."),
    search: str = typer.Option(
        "", "--search", "-q", help="Filter by title, URL or collection."
    ),
):
    """List downloads, high priority first, newest first."""
    status_filter = _parse_status(status)
    store = _store_only(ctx)
    jobs = store.list_by_status(status_filter, limit, offset=offset, search=search)
    total = store.count_filtered(status_filter, search=search)
    print_jobs_table(console, jobs, total)


@app.command()
def show(ctx: typer.Context, job_id: int = typer.Argument(..., metavar="ID")):
    """Show every field of one download."""
    store = _store_only(ctx)
    job = store.get(job_id)
    if job is None:
        _fail(f"Download {job_id} not found.")
    print_job_detail(console, job)


def _recover(
    ctx: typer.Context, job_id: int, action: str, expected: JobStatus
) -> None:
    store = _store_only(ctx)
    if getattr(store, action)(job_id):
        console.print(f"[green]✓ Download {job_id} is pending again.[/green]")
        return

    job = store.get(job_id)
    if job is None:
        _fail(f"Download {job_id} not found.")
    _fail(
        f"Download {job_id} is {job.status.value}; {action} only applies to"
        f" {expected.value} downloads."
    )


@app.command()
def retry(ctx: typer.Context, job_id: int = typer.Argument(..., metavar="ID")):
    """Requeue a failed download."""
    _recover(ctx, job_id, "retry", JobStatus.ERROR)


@app.command()
def reset(ctx: typer.Context, job_id: int = typer.Argument(..., metavar="ID")):
    """Requeue a download stuck in 'downloading'."""
    _recover(ctx, job_id, "reset", JobStatus.DOWNLOADING)


@app.command()
def redownload(ctx: typer.Context, job_id: int = typer.Argument(..., metavar="ID")):
    """Requeue a successful download so it runs again."""
    _recover(ctx, job_id, "redownload", JobStatus.SUCCESS)


@app.command()
def delete(ctx: typer.Context, job_id: int = typer.Argument(..., metavar="ID")):
    """Delete a download from the database."""
    store = _store_only(ctx)
    if store.delete(job_id):
        console.print(f"[green]✓ Download {job_id} deleted.[/green]")
    else:
        console.print(f"[yellow]Download {job_id} did not exist.[/yellow]")


@app.command()
def priority(
    ctx: typer.Context,
    job_id: int = typer.Argument(..., metavar="ID"),
    level: Priority = typer.Argument(..., help="normal or high"),  # noqa: B008
):
    """Change the priority of a download."""
    store = _store_only(ctx)
    if not store.set_priority(job_id, level):
        _fail(f"Download {job_id} not found.")
    console.print(
        f"[green]✓ Download {job_id} priority set to {level.value}.[/green]"
    )


@app.command(name="retry-failed")
def retry_failed(ctx: typer.Context):
    """Requeue every failed download."""
    affected = _store_only(ctx).retry_all_failed()
    console.print(f"[green]✓ {affected} failed downloads queued for retry.[/green]")


@app.command(name="reset-downloading")
def reset_downloading(ctx: typer.Context):
    """Requeue every download stuck in 'downloading'."""
    affected = _store_only(ctx).reset_all_downloading()
    console.print(f"[green]✓ {affected} downloads reset to pending.[/green]")


@app.command(name="delete-failed")
def delete_failed(
    ctx: typer.Context,
    force: bool = typer.Option(
        False, "--force", "-f", help="Bypass the confirmation prompt."
    ),
):
    """Delete every failed download."""
    if not force and not typer.confirm(
        "Delete all failed downloads? This cannot be undone."
    ):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Abort()
    affected = _store_only(ctx).delete_all_failed()
    console.print(f"[green]✓ {affected} failed downloads deleted.[/green]")


def daemon(
    ctx: typer.Context,
    interval: float | None = typer.Option(
        None, "--interval", "-i", help="Minutes between runs (default from config)."
    ),
    limit: int | None = typer.Option(
        None, "--limit", "-n", help="Downloads per run (default from config)."
    ),
):
    """Run pending downloads periodically until interrupted."""
    config, store, processor, logger = _build_processor(ctx)
    interval_minutes = (
        interval if interval is not None else config.daemon_interval_minutes
    )
    batch_size = limit if limit is not None else config.daemon_batch_size
    if interval_minutes <= 0 or batch_size < 1:
        _fail("Interval must be positive and limit at least 1.")

    scheduler = Scheduler(
        store,
        processor,
        interval_s=interval_minutes * 60,
        batch_size=batch_size,
        logger=logger,
    )

    async def _run_daemon():
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, scheduler.stop)
            except (NotImplementedError, RuntimeError):
                # Windows event loops do not support signal handlers.
                pass
        await scheduler.start()

    console.print(
        f"[bold cyan]Daemon running every {interval_minutes:g} minutes, "
        f"{batch_size} downloads per run. Press Ctrl+C to stop.[/bold cyan]"
    )
    try:
        asyncio.run(_run_daemon())
    finally:
        logger.close()


app.command(name="daemon")(daemon)
app.command(name="dd", hidden=True)(daemon)


@app.command()
def validate(ctx: typer.Context):
    """Validate the current configuration."""
    state = _state(ctx)
    config = _load_config(state)
    print_validation_table(console, config, state.config_file)


@app.command()
def vacuum(ctx: typer.Context):
    """Optimize the job database."""
    console.print("[cyan]Optimizing job database...[/cyan]")
    try:
        _store_only(ctx).vacuum()
    except DlmError as e:
        _fail(f"Optimization failed: {e}")
    console.print("[green]✓ Database optimized.[/green]")
