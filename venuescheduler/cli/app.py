"""
Main CLI application using Typer.
"""

import asyncio
import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Annotated, List, NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.clock import FixedClock, SystemClock
from ..adapters.memory_store import stores_from_config
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import SchedulerError
from ..domain.models import (
    BookingAccepted,
    BookingConflict,
    BookingRequest,
    PricingBreakdown,
)
from ..services.scheduler import BookingScheduler

app = typer.Typer(
    name="venuescheduler",
    help="Check, price and hold venue booking windows",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
NowOption = Annotated[
    Optional[str],
    typer.Option("--now", help="Pretend the current instant is this ISO-8601 timestamp."),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show scheduler log output.")] = False,
):
    """
    Venue booking time-window scheduler.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load(config_file: Optional[Path], now: Optional[str]) -> tuple[AppConfig, BookingScheduler]:
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)
    booking_store, catalog_store = stores_from_config(config)
    clock = FixedClock(now) if now else SystemClock()
    scheduler = BookingScheduler.from_policy(config.policy, booking_store, catalog_store, clock)
    return config, scheduler


def _fail(message: str) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(1)


def _print_breakdown(breakdown: PricingBreakdown, title: str) -> None:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Date", style="bold yellow")
    table.add_column("Day")
    table.add_column("Base rate", justify="right")
    table.add_column("Multiplier", justify="right")
    table.add_column("Applied rate", justify="right", style="green")

    for line in breakdown.lines:
        table.add_row(
            line.display_date,
            line.day_of_week,
            str(line.base_rate),
            str(line.multiplier),
            str(line.applied_rate),
        )

    console.print()
    console.print(table)
    console.print(f"[bold]Total:[/bold] {breakdown.total} {breakdown.currency}")
    if breakdown.lines:
        console.print(f"[dim]Average per day: {breakdown.average_per_day} {breakdown.currency}[/dim]")
    console.print()


def _print_conflict(conflict: BookingConflict, tz: str) -> None:
    console.print(f"[yellow]⚠ {conflict.message}[/yellow]")
    for booking in conflict.conflicting_bookings:
        label = booking.booking_number or booking.id
        console.print(f"  • {label} ({booking.status.value}): {booking.interval.format_display(tz)}")
    for blackout in conflict.blackouts:
        console.print(f"  • Blackout {blackout.reason or blackout.id}: {blackout.interval.format_display(tz)}")

    if not conflict.alternative_windows:
        console.print("\nNo alternative window found nearby.")
        return

    console.print("\n[bold]Alternative windows:[/bold]")
    for window in conflict.alternative_windows:
        console.print(f"  {window.format_display(tz)}")


@app.command()
def slots(
    venue_id: Annotated[str, typer.Argument(help="Venue id")],
    config_file: ConfigOption = None,
):
    """
    List the active sessions of a venue.
    """
    try:
        config, scheduler = _load(config_file, None)
        if config.find_venue(venue_id) is None:
            _fail(f"Unknown venue: {venue_id}")

        active = asyncio.run(scheduler.list_slots(venue_id))

        table = Table(
            title=f"Sessions for {venue_id}",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Id", style="bold yellow")
        table.add_column("Label")
        table.add_column("Window", style="dim")
        table.add_column("Multiplier", justify="right")

        for slot in active:
            table.add_row(slot.id, slot.label, slot.window_display(), str(slot.price_multiplier))

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError) as e:
        _fail(str(e))


@app.command()
def quote(
    venue_id: Annotated[str, typer.Argument(help="Venue id")],
    slot_id: Annotated[str, typer.Argument(help="Slot id")],
    dates: Annotated[List[str], typer.Argument(help="Dates to price (YYYY-MM-DD)")],
    rate: Annotated[Optional[str], typer.Option("--rate", help="Base rate per date. Defaults to the venue's base rate.")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the breakdown as JSON.")] = False,
    config_file: ConfigOption = None,
):
    """
    Quote a venue session over one or more dates.
    """
    try:
        config, scheduler = _load(config_file, None)
        venue = config.find_venue(venue_id)
        if venue is None:
            _fail(f"Unknown venue: {venue_id}")

        base_rate = Decimal(rate) if rate is not None else venue.base_rate
        breakdown = asyncio.run(
            scheduler.quote_price(venue_id, slot_id, dates, lambda _day: base_rate)
        )

        if as_json:
            console.print_json(json.dumps(breakdown.to_dict()))
        else:
            _print_breakdown(breakdown, f"Quote for {venue_id} / {slot_id}")

    except SchedulerError as e:
        _fail(f"{e.code.value} - {e.message}")
    except (FileNotFoundError, ValueError, ArithmeticError) as e:
        _fail(str(e))


@app.command()
def check(
    venue_id: Annotated[str, typer.Argument(help="Venue id")],
    start: Annotated[str, typer.Option("--start", help="Start instant (ISO-8601 with offset)")],
    end: Annotated[str, typer.Option("--end", help="End instant (ISO-8601 with offset)")],
    now: NowOption = None,
    config_file: ConfigOption = None,
):
    """
    Check whether a window is free without holding it.
    """
    try:
        config, scheduler = _load(config_file, now)
        conflict = asyncio.run(scheduler.check_availability(config.tenant_id, venue_id, start, end))

        if conflict is None:
            console.print("\n[bold green]✓ Window is available[/bold green]\n")
            return
        _print_conflict(conflict, config.policy.timezone)
        console.print()

    except SchedulerError as e:
        _fail(f"{e.code.value} - {e.message}")
    except (FileNotFoundError, ValueError) as e:
        _fail(str(e))


@app.command()
def book(
    venue_id: Annotated[str, typer.Argument(help="Venue id")],
    start: Annotated[str, typer.Option("--start", help="Start instant (ISO-8601 with offset)")],
    end: Annotated[str, typer.Option("--end", help="End instant (ISO-8601 with offset)")],
    slot_id: Annotated[Optional[str], typer.Option("--slot", help="Session id")] = None,
    guests: Annotated[Optional[int], typer.Option("--guests", help="Guest count")] = None,
    now: NowOption = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the result as JSON.")] = False,
    config_file: ConfigOption = None,
):
    """
    Place a temporary hold on a venue window.

    Examples:

        venuescheduler book hall-a --start 2025-02-01T10:00:00Z --end 2025-02-01T12:00:00Z

        venuescheduler book hall-a --slot morning --guests 80 --start ... --end ...
    """
    try:
        config, scheduler = _load(config_file, now)
        request = BookingRequest(
            tenant_id=config.tenant_id,
            venue_id=venue_id,
            start_raw=start,
            end_raw=end,
            slot_id=slot_id,
            guest_count=guests,
        )
        result = asyncio.run(scheduler.schedule_booking(request))

        if as_json:
            console.print_json(json.dumps(result.to_dict()))
            if not isinstance(result, BookingAccepted):
                raise typer.Exit(2)
            return

        tz = config.policy.timezone
        if isinstance(result, BookingAccepted):
            booking = result.booking
            console.print(Panel.fit(
                f"[bold green]✓ Hold placed[/bold green]\n\n"
                f"[bold]Booking:[/bold] {booking.booking_number}\n"
                f"[bold]Window:[/bold] {booking.interval.format_display(tz)}\n"
                f"[bold]Hold expires:[/bold] {booking.hold_expires_at.in_timezone(tz).format('DD MMM YYYY, HH:mm')}",
                title="✓ Booking"
            ))
            _print_breakdown(result.quote, "Price breakdown")
            return

        console.print(f"\n[bold red]✗ {result.reason.value}:[/bold red] {result.detail}\n")
        if result.conflict is not None:
            _print_conflict(result.conflict, tz)
            console.print()
        raise typer.Exit(2)

    except SchedulerError as e:
        _fail(f"{e.code.value} - {e.message}")
    except (FileNotFoundError, ValueError) as e:
        _fail(str(e))


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]venuescheduler[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
