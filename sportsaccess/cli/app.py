"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Annotated

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..config import AppConfig
from ..domain import access_codec
from ..domain.exceptions import AccessBookingError, TokenError
from ..domain.models import AccessDecision
from ..domain.reader import evaluate_token
from ..services.factory import build_service

app = typer.Typer(
    name="sportsaccess",
    help="Book sports sessions and issue access-reader tokens",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show log output.")] = False,
):
    """
    Sports facility reservations with RFID access tokens.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    try:
        return AppConfig.load_or_default(config_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _parse_day(value: Optional[str], tz: str):
    if not value:
        return pendulum.today(tz).date()
    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz).date()
    except ValueError as e:
        console.print(f"[red]Could not parse date {value!r}: {e}[/red]")
        raise typer.Exit(1)


def _parse_instant(value: str, tz: str):
    try:
        parsed = pendulum.parse(value, tz=tz)
    except ValueError as e:
        console.print(f"[red]Could not parse datetime {value!r}: {e}[/red]")
        raise typer.Exit(1)
    if not isinstance(parsed, pendulum.DateTime):
        console.print(f"[red]Expected a date and time, got {value!r}[/red]")
        raise typer.Exit(1)
    return parsed


@app.command()
def slots(
    date: Annotated[Optional[str], typer.Option("--date", help="Day (YYYY-MM-DD), defaults to today")] = None,
    config_file: ConfigOption = None,
):
    """
    List the bookable start times of a day.
    """
    config = _load_config(config_file)
    service = build_service(config)
    day = _parse_day(date, config.timezone)

    starts = service.list_slots(day)
    console.print(f"\n[bold cyan]Slots for {day.isoformat()}[/bold cyan] ({config.timezone})\n")
    console.print("  " + "  ".join(start.format("HH:mm") for start in starts))
    console.print()


@app.command()
def classes(config_file: ConfigOption = None):
    """
    List the class catalog.
    """
    config = _load_config(config_file)
    service = build_service(config)
    catalog = asyncio.run(service.load_classes())

    if not catalog:
        console.print("[yellow]No classes available.[/yellow]")
        return

    table = Table(title="Classes", show_header=True, header_style="bold cyan")
    table.add_column("Id", style="bold yellow")
    table.add_column("Name")
    table.add_column("Minutes", justify="right", style="dim")

    for entry in catalog:
        table.add_row(entry.id, entry.name, str(entry.duration_minutes))

    console.print()
    console.print(table)
    console.print()


@app.command()
def book(
    subject_id: Annotated[str, typer.Argument(help="Student id (RUT / email)")],
    class_id: Annotated[str, typer.Argument(help="Class id, see 'classes'")],
    time: Annotated[str, typer.Option("--time", "-t", help="Start time (HH:MM)")] = "07:00",
    date: Annotated[Optional[str], typer.Option("--date", help="Day (YYYY-MM-DD), defaults to today")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Override class duration in minutes")] = None,
    config_file: ConfigOption = None,
):
    """
    Book a session and print its access token.

    Examples:

        sportsaccess book uai123456 gim --date 2025-10-03 --time 07:00
    """
    config = _load_config(config_file)
    service = build_service(config)
    day = _parse_day(date, config.timezone)
    start = _parse_instant(f"{day.isoformat()}T{time}", config.timezone)

    result = asyncio.run(service.book(subject_id, class_id, start, duration_minutes=duration))

    if not result.committed:
        console.print(
            f"[bold red]{result.state.value}:[/bold red] {result.reason.value}"
            + (f" - {result.message}" if result.message else "")
        )
        raise typer.Exit(1)

    reservation = result.reservation
    token = result.token
    window = service.access_window(reservation)
    source = "fallback store" if result.used_fallback else "primary store"

    console.print(Panel.fit(
        f"[bold green]✓ Reservation {reservation.id}[/bold green] ({source})\n\n"
        f"[bold]Session:[/bold] {reservation.time_range}\n"
        f"[bold]Access:[/bold] {window}\n\n"
        f"[bold]Token:[/bold] {token.text_form}\n"
        f"[bold]Hex:[/bold] [dim]{token.hex_form}[/dim]",
        title="Committed"
    ))


@app.command()
def encode(
    subject_id: Annotated[str, typer.Argument(help="Student id")],
    class_id: Annotated[str, typer.Argument(help="Class id")],
    start: Annotated[str, typer.Argument(help="Start (ISO 8601)")],
    end: Annotated[str, typer.Argument(help="End (ISO 8601)")],
    config_file: ConfigOption = None,
):
    """
    Encode a reservation into a token without booking it.
    """
    config = _load_config(config_file)
    try:
        token = access_codec.encode(
            subject_id,
            class_id,
            _parse_instant(start, config.timezone),
            _parse_instant(end, config.timezone),
        )
    except AccessBookingError as e:
        console.print(f"[bold red]{e.reason}:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(token.text_form, soft_wrap=True)
    console.print(token.hex_form, soft_wrap=True)


@app.command()
def decode(token: Annotated[str, typer.Argument(help="Token text or hex form")]):
    """
    Decode and validate a token.
    """
    try:
        decoded = access_codec.decode_any(token)
    except TokenError as e:
        console.print(f"[bold red]{e.reason}:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"[bold]Subject:[/bold] {decoded.subject_id}")
    console.print(f"[bold]Class:[/bold] {decoded.class_id}")
    console.print(f"[bold]Start:[/bold] {decoded.start_epoch} ({pendulum.from_timestamp(decoded.start_epoch).to_iso8601_string()})")
    console.print(f"[bold]End:[/bold] {decoded.end_epoch} ({pendulum.from_timestamp(decoded.end_epoch).to_iso8601_string()})")


@app.command()
def check(
    token: Annotated[str, typer.Argument(help="Token text or hex form")],
    now: Annotated[Optional[str], typer.Option("--now", help="Instant to check (ISO 8601), defaults to now")] = None,
    config_file: ConfigOption = None,
):
    """
    Evaluate a token the way the access reader does.
    """
    config = _load_config(config_file)
    instant = _parse_instant(now, config.timezone) if now else pendulum.now(config.timezone)

    decision = evaluate_token(token, instant, config.schedule.grace_minutes)

    if decision is AccessDecision.ALLOWED:
        console.print("[bold green]Allowed[/bold green]")
    else:
        console.print("[bold red]Denied[/bold red]")
        raise typer.Exit(1)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]sportsaccess[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
