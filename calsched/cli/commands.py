"""calsched CLI commands for scheduling, previewing and configuration checks."""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.table import Table

from calsched.bootstrap import create_scheduling_service
from calsched.config import get_settings
from calsched.errors import SchedulingError
from calsched.logging_config import setup_logging
from calsched.modules.scheduling.models import Rejected, Scheduled, ScheduledExportFailed

app = typer.Typer(help="Schedule calendar events and export them to the provider", no_args_is_help=True)
console = Console()


def _async_run(coro):
    """Run an async coroutine."""
    return asyncio.run(coro)


def _build_request(
    title: str,
    start: str,
    end: str,
    timezone: Optional[str],
    description: str,
    frequency: Optional[str],
    interval: Optional[int],
    count: Optional[int],
    until: Optional[str],
) -> dict:
    request: dict = {"title": title, "start": start, "end": end, "description": description}
    if timezone:
        request["timezone"] = timezone
    if frequency:
        recurrence: dict = {"frequency": frequency}
        if interval is not None:
            recurrence["interval"] = interval
        if count is not None:
            recurrence["count"] = count
        if until is not None:
            recurrence["until"] = until
        request["recurrence"] = recurrence
    return request


def _print_occurrences(occurrences) -> None:
    table = Table(title="Occurrences")
    table.add_column("#", justify="right")
    table.add_column("Start")
    table.add_column("End")
    for occ in occurrences:
        table.add_row(str(occ.index), occ.start.isoformat(), occ.end.isoformat())
    console.print(table)


TitleOpt = typer.Option(..., "--title", "-t", help="Event title")
StartOpt = typer.Option(..., "--start", help="Start, e.g. 2024-03-09T09:00:00-08:00")
EndOpt = typer.Option(..., "--end", help="End, e.g. 2024-03-09T09:15:00-08:00")
TimezoneOpt = typer.Option(None, "--timezone", "-z", help="IANA zone, e.g. America/Los_Angeles")
DescriptionOpt = typer.Option("", "--description", "-d", help="Event description")
FrequencyOpt = typer.Option(None, "--frequency", "-f", help="DAILY, WEEKLY, MONTHLY or YEARLY")
IntervalOpt = typer.Option(None, "--interval", help="Repeat every N frequency units")
CountOpt = typer.Option(None, "--count", help="Number of occurrences")
UntilOpt = typer.Option(None, "--until", help="Last possible occurrence start")


@app.command()
def preview(
    title: str = TitleOpt,
    start: str = StartOpt,
    end: str = EndOpt,
    timezone: Optional[str] = TimezoneOpt,
    description: str = DescriptionOpt,
    frequency: Optional[str] = FrequencyOpt,
    interval: Optional[int] = IntervalOpt,
    count: Optional[int] = CountOpt,
    until: Optional[str] = UntilOpt,
) -> None:
    """Validate an event and list its occurrences without exporting."""
    setup_logging()
    service = create_scheduling_service()
    request = _build_request(title, start, end, timezone, description, frequency, interval, count, until)
    try:
        event, occurrences = service.prepare(request)
    except SchedulingError as exc:
        console.print(f"[red]✗ {exc.code}:[/red] {exc.message}")
        raise typer.Exit(code=2)

    console.print(f"[green]✓[/green] {event.title} ({event.start.isoformat()} → {event.end.isoformat()})")
    if event.recurrence is not None:
        console.print(f"  RRULE:{event.recurrence.to_rrule()}")
        _print_occurrences(occurrences)


@app.command()
def schedule(
    title: str = TitleOpt,
    start: str = StartOpt,
    end: str = EndOpt,
    timezone: Optional[str] = TimezoneOpt,
    description: str = DescriptionOpt,
    frequency: Optional[str] = FrequencyOpt,
    interval: Optional[int] = IntervalOpt,
    count: Optional[int] = CountOpt,
    until: Optional[str] = UntilOpt,
) -> None:
    """Schedule an event and export it to the configured provider."""
    setup_logging()
    service = create_scheduling_service()
    request = _build_request(title, start, end, timezone, description, frequency, interval, count, until)
    result = _async_run(service.schedule(request))

    if isinstance(result, Scheduled):
        console.print(f"[green]✓ Scheduled[/green] {result.event_id} → {result.provider_event_id}")
        if result.occurrences:
            _print_occurrences(result.occurrences)
    elif isinstance(result, ScheduledExportFailed):
        console.print(
            f"[yellow]⚠ Saved {result.event_id} but export failed:[/yellow] "
            f"{result.export_error.describe()}"
        )
        raise typer.Exit(code=1)
    elif isinstance(result, Rejected):
        console.print(f"[red]✗ Rejected ({result.error.code}):[/red] {result.error.message}")
        raise typer.Exit(code=2)


@app.command()
def doctor() -> None:
    """Check the provider configuration."""
    console.print("\n[bold cyan]calsched doctor[/bold cyan]\n")
    issues = 0

    try:
        settings = get_settings()
    except PydanticValidationError as exc:
        console.print(f"  [red]✗[/red] Config failed: {exc}")
        raise typer.Exit(code=1)

    console.print(f"  [green]✓[/green] Config loaded (env={settings.calsched_env})")
    console.print(f"  [green]✓[/green] Provider {settings.provider_base_url}")
    console.print(f"  [green]✓[/green] Calendar {settings.provider_calendar_id}")
    if settings.has_credentials:
        console.print("  [green]✓[/green] Access token configured")
    else:
        issues += 1
        console.print("  [red]✗[/red] PROVIDER_ACCESS_TOKEN is not set")
    console.print(
        f"  [green]✓[/green] Export: {settings.export_strategy.value}, "
        f"{settings.export_max_attempts} attempts, backoff base {settings.export_backoff_base}s"
    )
    if settings.default_timezone:
        console.print(f"  [green]✓[/green] Default timezone {settings.default_timezone}")
    else:
        console.print("  [yellow]⚠[/yellow] No default timezone; events without one keep a fixed offset")

    if issues:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
