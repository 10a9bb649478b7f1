"""
Main CLI application using Typer.
"""

import logging
from datetime import date
from pathlib import Path
from typing import List, Optional

import pendulum
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..adapters.json_store import JsonAppointmentStore
from ..config import AppConfig, get_default_config_path
from ..domain.availability import AvailabilityResolver
from ..domain.exceptions import BookingError, ConflictError
from ..domain.models import Actor, ActorRole, Appointment, AppointmentStatus, Slot, format_clock
from ..services.booking_coordinator import BookingCoordinator
from ..services.ledger import AppointmentLedger

app = typer.Typer(
    name="slotbook",
    help="Check availability and manage appointments for configured businesses",
    add_completion=False
)

console = Console()

STATUS_STYLES = {
    AppointmentStatus.PENDING: "yellow",
    AppointmentStatus.CONFIRMED: "green",
    AppointmentStatus.COMPLETED: "cyan",
    AppointmentStatus.CANCELLED: "dim",
}


def build_coordinator(config: AppConfig, base_dir: Optional[Path] = None) -> BookingCoordinator:
    """Wire catalog, calendar, JSON ledger and resolver from the configuration."""
    store_path = config.storage.appointments_file
    if not store_path.is_absolute() and base_dir is not None:
        store_path = base_dir / store_path

    ledger = AppointmentLedger(JsonAppointmentStore(store_path))
    resolver = AvailabilityResolver(
        working_hours=config.build_calendar(),
        intervals=ledger,
        granularity_minutes=config.booking.slot_granularity_minutes,
        min_lead_time_minutes=config.booking.min_lead_time_minutes,
    )
    return BookingCoordinator(
        catalog=config.build_catalog(),
        ledger=ledger,
        resolver=resolver,
        timezone=config.timezone,
    )


def _load(config_file: Optional[Path]) -> tuple:
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)
    return config, build_coordinator(config, base_dir=config_path.parent)


def _parse_date(value: Optional[str], tz: str) -> date:
    """Parse YYYY-MM-DD, or the words today/tomorrow."""
    if value is None or value.lower() == "today":
        return pendulum.today(tz).date()
    if value.lower() == "tomorrow":
        return pendulum.tomorrow(tz).date()
    try:
        return pendulum.parse(value, tz=tz).date()
    except ValueError as e:
        console.print(f"[red]Could not parse date {value!r}: {e}[/red]")
        raise typer.Exit(1)


def _parse_actor(value: str) -> Actor:
    """Parse ``customer:<id>`` or ``business:<id>``."""
    role, sep, identifier = value.partition(":")
    try:
        actor_role = ActorRole(role.strip().lower())
    except ValueError:
        actor_role = None
    if not sep or not identifier or actor_role not in (ActorRole.CUSTOMER, ActorRole.BUSINESS):
        console.print(f"[red]Invalid actor {value!r}; use customer:<id> or business:<id>[/red]")
        raise typer.Exit(1)
    return Actor(role=actor_role, id=identifier.strip())


def _print_slots(slots: List[Slot]) -> None:
    if not slots:
        console.print(
            "[yellow]⚠ No available slots found.[/yellow]\n"
            "Try another date, staff member or service."
        )
        return
    console.print(f"[bold green]✓ {len(slots)} available slot(s):[/bold green]\n")
    console.print("  " + "  ".join(slot.label for slot in slots))


def _print_appointment(appointment: Appointment, title: str) -> None:
    style = STATUS_STYLES.get(appointment.status, "white")
    console.print(Panel.fit(
        f"[bold]Reference:[/bold] {appointment.id}\n"
        f"[bold]When:[/bold] {appointment.date.isoformat()} "
        f"{format_clock(appointment.start_minute)}-{format_clock(appointment.end_minute)}\n"
        f"[bold]Service:[/bold] {appointment.service_id}"
        + (f" with {appointment.staff_id}" if appointment.staff_id else "") + "\n"
        f"[bold]Status:[/bold] [{style}]{appointment.status.value}[/{style}]",
        title=title
    ))


def _fail(error) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """
    slotbook - availability and booking engine.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@app.command()
def hours(
    business: str = typer.Argument(..., help="Business id"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file")
):
    """
    Show the weekly working hours of a business.
    """
    try:
        config, _ = _load(config_file)
        calendar = config.build_calendar()
        if not calendar.knows(business):
            _fail(f"Business {business!r} not found")

        table = Table(title=f"Working hours - {business}", show_header=True, header_style="bold cyan")
        table.add_column("Day", style="bold yellow")
        table.add_column("Hours")

        for entry in calendar.week(business):
            window = entry.window()
            table.add_row(
                entry.day.value.capitalize(),
                str(window) if window else "[dim]closed[/dim]",
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def services(
    business: str = typer.Argument(..., help="Business id"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file")
):
    """
    List the services and staff of a business.
    """
    try:
        config, _ = _load(config_file)
        entry = config.find_business(business)
        if entry is None:
            _fail(f"Business {business!r} not found")

        table = Table(title=f"Services - {entry.name or entry.id}", show_header=True, header_style="bold cyan")
        table.add_column("Id", style="bold yellow")
        table.add_column("Name")
        table.add_column("Duration")
        table.add_column("Booking")
        table.add_column("Staff", style="dim")

        for service in entry.services:
            staff = [m.id for m in entry.staff if not m.services or service.id in m.services]
            table.add_row(
                service.id,
                service.name or service.id,
                f"{service.duration_minutes} min",
                ("instant" if service.instant_book else "approval") if service.active else "[red]inactive[/red]",
                ", ".join(staff) or "-",
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def slots(
    business: str = typer.Argument(..., help="Business id"),
    service: str = typer.Argument(..., help="Service id"),
    date_str: Optional[str] = typer.Option(None, "--date", "-d", help="Date (YYYY-MM-DD, today, tomorrow)"),
    staff: Optional[str] = typer.Option(None, "--staff", "-s", help="Staff member id"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file")
):
    """
    Show bookable start times for a service on one date.
    """
    try:
        config, coordinator = _load(config_file)
        day = _parse_date(date_str, config.timezone)

        console.print(f"\n[bold]{business}[/bold] · {service} · {day.isoformat()}\n")
        _print_slots(coordinator.get_availability(business, service, staff, day))
        console.print()

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def week(
    business: str = typer.Argument(..., help="Business id"),
    service: str = typer.Argument(..., help="Service id"),
    start: Optional[str] = typer.Option(None, "--start", help="First date (default today)"),
    days: int = typer.Option(7, "--days", help="Number of dates to show"),
    staff: Optional[str] = typer.Option(None, "--staff", "-s", help="Staff member id"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file")
):
    """
    Show availability for several consecutive dates.
    """
    try:
        config, coordinator = _load(config_file)
        first = _parse_date(start, config.timezone)
        calendar = coordinator.availability_range(business, service, staff, first, days)

        table = Table(title=f"Availability - {business} / {service}", show_header=True, header_style="bold cyan")
        table.add_column("Date", style="bold yellow")
        table.add_column("Slots", justify="right")
        table.add_column("First", style="green")
        table.add_column("Last", style="green")

        for day, day_slots in calendar.items():
            label = f"{day.strftime('%a')} {day.isoformat()}"
            if day_slots:
                table.add_row(label, str(len(day_slots)), day_slots[0].label, day_slots[-1].label)
            else:
                table.add_row(label, "0", "[dim]-[/dim]", "[dim]-[/dim]")

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def book(
    business: str = typer.Argument(..., help="Business id"),
    service: str = typer.Argument(..., help="Service id"),
    time_str: str = typer.Option(..., "--time", "-t", help="Start time HH:MM"),
    customer: str = typer.Option(..., "--customer", help="Customer id"),
    date_str: Optional[str] = typer.Option(None, "--date", "-d", help="Date (YYYY-MM-DD, today, tomorrow)"),
    staff: Optional[str] = typer.Option(None, "--staff", "-s", help="Staff member id"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Notes for the business"),
    key: Optional[str] = typer.Option(None, "--idempotency-key", help="Request key; repeating it returns the same booking"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file")
):
    """
    Book an appointment.
    """
    try:
        config, coordinator = _load(config_file)
        day = _parse_date(date_str, config.timezone)

        try:
            appointment = coordinator.book(
                business, service, staff, day, time_str, customer,
                notes=notes, idempotency_key=key,
            )
        except ConflictError as e:
            console.print(f"[bold red]✗ {e}[/bold red]\nRefreshed availability:\n")
            _print_slots(coordinator.get_availability(business, service, staff, day))
            raise typer.Exit(1)

        _print_appointment(appointment, "✓ Booked")

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def confirm(
    appointment_id: str = typer.Argument(..., help="Appointment reference"),
    business: str = typer.Option(..., "--business", help="Business id confirming the request"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file")
):
    """
    Confirm a pending appointment.
    """
    try:
        _, coordinator = _load(config_file)
        _print_appointment(coordinator.confirm(appointment_id, Actor.business(business)), "✓ Confirmed")
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def cancel(
    appointment_id: str = typer.Argument(..., help="Appointment reference"),
    actor: str = typer.Option(..., "--as", help="customer:<id> or business:<id>"),
    reason: Optional[str] = typer.Option(None, "--reason", help="Cancellation reason"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file")
):
    """
    Cancel an appointment and release its time.
    """
    try:
        _, coordinator = _load(config_file)
        appointment = coordinator.cancel(appointment_id, _parse_actor(actor), reason)
        _print_appointment(appointment, "✓ Cancelled")
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def reschedule(
    appointment_id: str = typer.Argument(..., help="Appointment reference"),
    time_str: str = typer.Option(..., "--time", "-t", help="New start time HH:MM"),
    actor: str = typer.Option(..., "--as", help="customer:<id> or business:<id>"),
    date_str: Optional[str] = typer.Option(None, "--date", "-d", help="New date (default: same date)"),
    key: Optional[str] = typer.Option(None, "--idempotency-key", help="Request key"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file")
):
    """
    Move an appointment to a new date and time.
    """
    try:
        config, coordinator = _load(config_file)
        who = _parse_actor(actor)
        current = coordinator.get_appointment(appointment_id, who)
        day = _parse_date(date_str, config.timezone) if date_str else current.date

        try:
            appointment = coordinator.reschedule(appointment_id, day, time_str, who, idempotency_key=key)
        except ConflictError as e:
            console.print(f"[bold red]✗ {e}[/bold red]\nYour appointment was not changed. Refreshed availability:\n")
            _print_slots(coordinator.get_availability(current.business_id, current.service_id, current.staff_id, day))
            raise typer.Exit(1)

        _print_appointment(appointment, "✓ Rescheduled")

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def complete(
    appointment_id: Optional[str] = typer.Argument(None, help="Appointment reference"),
    business: Optional[str] = typer.Option(None, "--business", help="Business id marking it done"),
    elapsed: bool = typer.Option(False, "--elapsed", help="Complete every confirmed appointment that has ended"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file")
):
    """
    Mark appointments as completed.
    """
    try:
        _, coordinator = _load(config_file)
        if elapsed:
            done = coordinator.complete_elapsed()
            console.print(f"[green]✓ {len(done)} appointment(s) completed.[/green]")
            return

        if appointment_id is None or business is None:
            _fail("Provide an appointment reference and --business, or use --elapsed")
        _print_appointment(coordinator.complete(appointment_id, Actor.business(business)), "✓ Completed")

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def appointments(
    business: Optional[str] = typer.Option(None, "--business", help="List a business's appointments"),
    customer: Optional[str] = typer.Option(None, "--customer", help="List a customer's appointments"),
    status: Optional[str] = typer.Option(None, "--status", help="pending, confirmed, completed or cancelled"),
    date_str: Optional[str] = typer.Option(None, "--date", "-d", help="Only this date (business listing)"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file")
):
    """
    List appointments of a business or a customer.
    """
    try:
        config, coordinator = _load(config_file)
        status_filter = AppointmentStatus.parse(status) if status else None

        if business:
            day = _parse_date(date_str, config.timezone) if date_str else None
            rows = coordinator.appointments_for_business(business, status_filter, day)
        elif customer:
            rows = coordinator.appointments_for_customer(customer, status_filter)
        else:
            _fail("Use --business or --customer")

        if not rows:
            console.print("[yellow]No appointments found.[/yellow]")
            return

        table = Table(title="Appointments", show_header=True, header_style="bold cyan")
        table.add_column("Reference", style="bold yellow")
        table.add_column("Date")
        table.add_column("Time")
        table.add_column("Service")
        table.add_column("Staff", style="dim")
        table.add_column("Customer", style="dim")
        table.add_column("Status")

        for row in rows:
            style = STATUS_STYLES.get(row.status, "white")
            table.add_row(
                row.id,
                row.date.isoformat(),
                f"{format_clock(row.start_minute)}-{format_clock(row.end_minute)}",
                row.service_id,
                row.staff_id or "-",
                row.customer_id,
                f"[{style}]{row.status.value}[/{style}]",
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotbook[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
