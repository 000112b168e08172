"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from dlm.models.config import DlmConfig
from dlm.models.job import Job, JobStatus, StatusCount
from dlm.models.stats import AddSummary, ProcessStats
from dlm.utils.formatting import format_duration, format_timestamp, truncate

STATUS_STYLES = {
    JobStatus.PENDING: "yellow",
    JobStatus.DOWNLOADING: "cyan",
    JobStatus.SUCCESS: "green",
    JobStatus.ERROR: "red",
}


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `dlm init` to create a configuration file.",
            "• Run `dlm validate` to check the current configuration.",
            "• Every collection command must contain the '%' URL placeholder.",
        ],
        "StorageError": [
            "• Check that the database file is readable and writable.",
            "• Another process may hold a long write lock; try again.",
            "• Use --db or DLM_DB to point at a different database.",
        ],
        "CollectionNotFoundError": [
            "• The job's collection was removed or renamed in the configuration.",
            "• Restore the collection or delete the job with `dlm delete <ID>`.",
        ],
        "DirectoryError": [
            "• Check the 'dir' of the collection and its permissions.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -v for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def status_text(status: JobStatus) -> Text:
    return Text(status.value, style=STATUS_STYLES.get(status, "white"))


def print_counts_table(console: Console, counts: list[StatusCount]):
    """Displays the number of jobs in each status."""
    table = Table(title="Downloads in Database", box=box.SIMPLE)
    table.add_column("Status")
    table.add_column("Count", justify="right")
    for count in counts:
        table.add_row(status_text(count.status), str(count.count))
    table.add_row(Text("total", style="bold"), str(sum(c.count for c in counts)))
    console.print(table)


def print_jobs_table(console: Console, jobs: list[Job], total: int | None = None):
    """Displays a list of jobs."""
    if not jobs:
        console.print("[dim]No downloads found.[/dim]")
        return

    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Status")
    table.add_column("Prio")
    table.add_column("Collection", style="cyan")
    table.add_column("Title / URL", overflow="fold")
    table.add_column("Added", style="dim")

    for job in jobs:
        priority = "[bold magenta]high[/]" if job.priority.value == "high" else ""
        table.add_row(
            str(job.id),
            status_text(job.status),
            priority,
            job.collection,
            truncate(job.display_name, 70),
            format_timestamp(job.created_at),
        )
    console.print(table)

    if total is not None and total > len(jobs):
        console.print(f"[dim]Showing {len(jobs)} of {total} downloads.[/dim]")


def print_job_detail(console: Console, job: Job):
    """Displays every field of a single job."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column(overflow="fold")

    table.add_row("ID:", str(job.id))
    table.add_row("URL:", job.url)
    table.add_row("Title:", job.title or "[dim]-[/dim]")
    table.add_row("Collection:", job.collection)
    table.add_row("Status:", status_text(job.status))
    table.add_row("Priority:", job.priority.value)
    table.add_row("Added:", format_timestamp(job.created_at))
    table.add_row("Downloaded:", format_timestamp(job.downloaded_at))
    if job.error_message:
        table.add_row("Error:", Text(job.error_message, style="red"))

    console.print(
        Panel(
            table,
            title=f"Download {job.id}",
            border_style=STATUS_STYLES.get(job.status, "white"),
        )
    )


def print_validation_table(console: Console, config: DlmConfig, config_file: Path):
    """Displays a summary of the current settings and collections."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Config File:", f"[dim]{config_file}[/dim]")
    table.add_row("Database:", config.database)
    table.add_row(
        "Daemon:",
        f"every {config.daemon_interval_minutes:g} min, "
        f"{config.daemon_batch_size} per run",
    )
    table.add_row(
        "Fetch Titles:", "✓ Enabled" if config.fetch_titles else "✗ Disabled"
    )

    collections = Table(box=box.SIMPLE_HEAD)
    collections.add_column("Collection", style="cyan")
    collections.add_column("Domains")
    collections.add_column("Directory", style="dim")
    collections.add_column("Command")
    for collection in config.collections:
        collections.add_row(
            collection.name,
            ", ".join(collection.domains),
            collection.directory,
            collection.command,
        )

    content = Table.grid(padding=(1, 0))
    content.add_row(table)
    content.add_row(collections)

    console.print(
        Panel(
            content,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_add_summary(console: Console, summary: AddSummary):
    """Displays the outcome of an add batch."""
    parts = [f"[green]{summary.added} added[/green]"]
    if summary.duplicates:
        parts.append(f"[yellow]{summary.duplicates} already present[/yellow]")
    if summary.unmatched:
        parts.append(f"[yellow]{summary.unmatched} without collection[/yellow]")
    if summary.failed:
        parts.append(f"[red]{summary.failed} failed[/red]")
    console.print(" · ".join(parts))


def print_process_summary(console: Console, stats: ProcessStats):
    """Displays the final summary of a run batch."""
    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=16)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row(
        "✓ Downloaded:", f"[bold green]{stats.succeeded}[/bold green]"
    )
    if stats.failed:
        stats_table.add_row("✗ Failed:", f"[bold red]{stats.failed}[/bold red]")
    if stats.errored:
        stats_table.add_row("⚠ Not Run:", f"[red]{stats.errored}[/red]")
    if stats.skipped:
        stats_table.add_row("○ Skipped:", f"[yellow]{stats.skipped}[/yellow]")
    stats_table.add_row(
        "Time Elapsed:", f"[blue]{format_duration(stats.duration_s)}[/blue]"
    )

    border_color = "green" if not (stats.failed or stats.errored) else "yellow"
    title = "[bold]Downloads Finished[/bold]"
    if stats.stopped_early:
        title = "[bold]Downloads Interrupted[/bold]"

    console.print(
        Panel(
            stats_table,
            title=title,
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
