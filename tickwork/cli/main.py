"""
Tickwork CLI - Command Line Interface

Main entry point for the `tickwork` command.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tickwork.__version__ import __version__
from tickwork.core.config import SchedulerSettings, get_settings
from tickwork.core.exceptions import TickworkError
from tickwork.scheduler.calendars import WeeklyCalendar
from tickwork.scheduler.clock import compute_fire_times, compute_final_fire
from tickwork.scheduler.triggers import REPEAT_INDEFINITELY, TriggerDefinition

app = typer.Typer(
    name="tickwork",
    help="Recurring-job trigger engine",
    add_completion=False,
)

console = Console()


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Not an ISO 8601 timestamp: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@app.command()
def version():
    """Show Tickwork version."""
    console.print(f"[bold green]Tickwork[/bold green] version [cyan]{__version__}[/cyan]")


@app.command()
def preview(
    interval_ms: int = typer.Option(60000, "--interval-ms", "-i", help="Repeat interval in milliseconds"),
    repeat_count: int = typer.Option(
        REPEAT_INDEFINITELY, "--repeat-count", "-r", help="Repeats after the first firing (-1 = forever)"
    ),
    start: Optional[str] = typer.Option(None, "--start", "-s", help="Start time, ISO 8601 (default: now)"),
    end: Optional[str] = typer.Option(None, "--end", "-e", help="End time, ISO 8601"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of fire times to show"),
    skip_weekends: bool = typer.Option(False, "--skip-weekends", help="Exclude Saturdays and Sundays"),
):
    """
    Print upcoming fire times of a simple repeating trigger.

    Example:
        tickwork preview --interval-ms 3600000 --repeat-count 5
        tickwork preview -s 2024-01-01T09:00:00+00:00 -i 86400000 --skip-weekends
    """
    start_time = _parse_time(start) or datetime.now(timezone.utc)
    end_time = _parse_time(end)

    try:
        trigger = TriggerDefinition(
            name="preview",
            job_name="preview",
            start_time=start_time,
            end_time=end_time,
            repeat_count=repeat_count,
            repeat_interval=timedelta(milliseconds=interval_ms) if repeat_count != 0 else timedelta(0),
        )
    except TickworkError as e:
        console.print(f"[red]✗ Error:[/red] {e.message}")
        raise typer.Exit(code=1)

    calendar = WeeklyCalendar() if skip_weekends else None
    fire_times = compute_fire_times(trigger, calendar, limit=limit)

    if not fire_times:
        console.print("[yellow]The trigger never fires[/yellow]")
        raise typer.Exit(code=1)

    table = Table(title="Upcoming fire times")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Fire time", style="green")
    table.add_column("Weekday")

    for i, fire_time in enumerate(fire_times, start=1):
        table.add_row(str(i), fire_time.isoformat(), fire_time.strftime("%A"))

    console.print(table)

    final = compute_final_fire(trigger, calendar)
    console.print(f"[bold]Final fire time:[/bold] {final.isoformat() if final else 'never (repeats forever)'}")


@app.command()
def config(
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="YAML settings file"),
):
    """
    Show effective scheduler settings.

    Example:
        tickwork config
        tickwork config --file tickwork.yaml
    """
    try:
        settings = SchedulerSettings.load_from_file(file) if file else get_settings()
    except TickworkError as e:
        console.print(f"[red]✗ Error:[/red] {e.message}")
        raise typer.Exit(code=1)

    console.print(Panel.fit(
        "[bold green]Scheduler settings[/bold green]",
        title="Tickwork"
    ))

    table = Table()
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.to_dict().items():
        table.add_row(key, str(value))

    console.print(table)


if __name__ == "__main__":
    app()
