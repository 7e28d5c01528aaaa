"""
Main CLI application using Typer.
"""

import logging
from datetime import date, time
from pathlib import Path
from typing import List, Optional, Annotated

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.storage import JsonFileStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import AgendaError, BookingError
from ..services.booking import BookingAction, BookingRequest
from ..services.engine import Engine, build_engine

app = typer.Typer(
    name="agendasync",
    help="Bookable slots for a single-provider calendar, synced with Google Calendar",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
MockOption = Annotated[bool, typer.Option("--mock", help="Use mock calendar data and skip authentication.")]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_engine(config_file: Optional[Path], mock: bool) -> Engine:
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)
    pendulum.set_locale(config.provider.locale)
    return build_engine(config, mock=mock)


def _parse_date(value: str) -> date:
    try:
        return pendulum.from_format(value, "YYYY-MM-DD").date()
    except ValueError as e:
        console.print(f"[red]Could not parse date '{value}': {e}[/red]")
        raise typer.Exit(1)


def _dates_in_range(start: date, days: int) -> List[date]:
    first = pendulum.date(start.year, start.month, start.day)
    return [first.add(days=offset) for offset in range(days)]


@app.command()
def slots(
    day: Annotated[str, typer.Argument(help="Date to check (YYYY-MM-DD)")],
    days: Annotated[int, typer.Option("--days", "-n", help="Number of consecutive days to resolve")] = 1,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Show bookable slots for a date.

    Examples:

        agendasync slots 2026-02-09
        agendasync slots 2026-02-09 --days 5 --mock
    """
    try:
        engine = _load_engine(config_file, mock)
        start = _parse_date(day)
        dates = _dates_in_range(start, max(days, 1))

        if mock:
            console.print("[yellow]⚠  MOCK MODE: using sample calendar data[/yellow]\n")

        results = engine.resolver.resolve_many(dates)

        for current in dates:
            day_slots = results[current]
            if not day_slots:
                console.print(f"[yellow]{current.isoformat()}: closed, no slots offered.[/yellow]")
                continue

            table = Table(title=f"Slots on {current.isoformat()}", show_header=True, header_style="bold cyan")
            table.add_column("Time", style="bold")
            table.add_column("Status")
            for slot in day_slots:
                status = "[green]available[/green]" if slot.available else "[red]busy[/red]"
                table.add_row(slot.time, status)
            console.print(table)

    except FileNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    except AgendaError as e:
        console.print(f"[bold red]Could not determine availability:[/bold red] {e}")
        raise typer.Exit(2)


@app.command()
def book(
    service_id: Annotated[str, typer.Argument(help="Service to book")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start: Annotated[str, typer.Argument(help="Slot time (HH:MM)")],
    name: Annotated[str, typer.Option("--name", help="Patient full name")],
    email: Annotated[Optional[str], typer.Option("--email", help="Patient email")] = None,
    phone: Annotated[Optional[str], typer.Option("--phone", help="Patient phone")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Request an appointment; it stays pending until confirmed.
    """
    try:
        engine = _load_engine(config_file, mock)
        request = BookingRequest(
            service_id=service_id,
            day=_parse_date(day),
            start=time.fromisoformat(start),
            full_name=name,
            email=email,
            phone=phone,
        )
        appointment = engine.desk.request_booking(request)
        console.print(
            f"[green]✓ Appointment {appointment.id} requested for {day} {start}. "
            f"Waiting for confirmation.[/green]"
        )

    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    except BookingError as e:
        console.print(f"[bold red]Booking rejected:[/bold red] {e}")
        raise typer.Exit(1)

    except AgendaError as e:
        console.print(f"[bold red]Could not determine availability:[/bold red] {e}")
        raise typer.Exit(2)


def _run_action(action: BookingAction, appointment_id: str, config_file: Optional[Path], mock: bool) -> None:
    try:
        engine = _load_engine(config_file, mock)
        outcome = engine.desk.apply(action, appointment_id)
    except (FileNotFoundError, AgendaError) as e:
        console.print(f"[bold red]{action.value.capitalize()} failed:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ Appointment {appointment_id} marked {outcome.appointment.status.value}.[/green]")

    if action is BookingAction.CONFIRM:
        if outcome.sync_failed:
            console.print(
                f"[bold yellow]⚠ Calendar synchronization failed:[/bold yellow] {outcome.sync_error}\n"
                f"The appointment stays confirmed. Retry with: agendasync sync {appointment_id}"
            )
            raise typer.Exit(3)
        console.print(f"[green]✓ Calendar event {outcome.external_event_id} created.[/green]")


@app.command()
def confirm(
    appointment_id: Annotated[str, typer.Argument(help="Appointment to confirm")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Confirm a pending appointment and mirror it to the calendar.
    """
    _run_action(BookingAction.CONFIRM, appointment_id, config_file, mock)


@app.command()
def reject(
    appointment_id: Annotated[str, typer.Argument(help="Appointment to reject")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Reject a pending appointment.
    """
    _run_action(BookingAction.REJECT, appointment_id, config_file, mock)


@app.command()
def sync(
    appointment_id: Annotated[str, typer.Argument(help="Confirmed appointment to synchronize")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Retry calendar synchronization for a confirmed appointment.
    """
    try:
        engine = _load_engine(config_file, mock)
        event_id = engine.desk.retry_sync(appointment_id)
    except (FileNotFoundError, AgendaError) as e:
        console.print(f"[bold red]Synchronization failed:[/bold red] {e}")
        raise typer.Exit(3)

    console.print(f"[green]✓ Appointment {appointment_id} is synced as event {event_id}.[/green]")

    delivered = engine.outbox.flush()
    if delivered:
        console.print(f"[green]✓ {delivered} queued notification(s) delivered.[/green]")
    if engine.outbox.pending:
        console.print(f"[yellow]{len(engine.outbox.pending)} notification(s) still waiting for retry.[/yellow]")


@app.command()
def services(
    config_file: ConfigOption = None,
):
    """
    List the services offered for booking.
    """
    try:
        config = AppConfig.load_from_yaml(config_file or get_default_config_path())
        store = JsonFileStore(config.storage_path)
    except FileNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    active = store.active_services()
    if not active:
        console.print("[yellow]No active services configured.[/yellow]")
        return

    table = Table(title="Services", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold yellow")
    table.add_column("Price", justify="right")
    table.add_column("Duration", justify="right")
    for service in active:
        table.add_row(service.id, service.name, f"{service.price:.2f}", f"{service.duration_min} min")

    console.print()
    console.print(table)
    console.print()


@app.command()
def test_auth(
    config_file: ConfigOption = None,
):
    """
    Test the service-account credentials against the configured calendar.
    """
    try:
        engine = _load_engine(config_file, mock=False)
        calendar = engine.calendar_client.test_connection(engine.config.google.require_calendar_id())

        console.print(Panel.fit(
            f"[bold green]✓ Authentication successful![/bold green]\n\n"
            f"[bold]Calendar:[/bold] {calendar.get('summary', 'N/A')}\n"
            f"[bold]Timezone:[/bold] {calendar.get('timeZone', 'N/A')}",
            title="✓ Connection test"
        ))
        console.print()

    except (FileNotFoundError, AgendaError) as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}\n")
        raise typer.Exit(1)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]agendasync[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
