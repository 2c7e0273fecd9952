"""
JengaTrack CLI

Command-line interface for JengaTrack administration.

Commands:
- check-db: Verify the database connection
- create-profile: Register a WhatsApp number
- parse: Dry-run the intent parser on a message
- summary: Show the budget summary of a profile's active project
- send-test: Send a test WhatsApp message
- messages: Show the recent WhatsApp message log
"""

import asyncio
from typing import Optional
from uuid import UUID

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from jengatrack.core.db import session_scope
from jengatrack.core.logging import setup_logging
from jengatrack.core.settings import ConfigurationError, get_settings

app = typer.Typer(
    name="jengatrack",
    help="JengaTrack administration CLI",
)

console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    setup_logging("DEBUG" if verbose else "WARNING")


def parse_uuid(value: str, label: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        rprint(f"[red]Invalid {label}: {value}[/red]")
        raise typer.Exit(1)


@app.command()
def check_db():
    """
    Check that the database is reachable.
    """
    try:
        get_settings()
    except ConfigurationError as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(1)

    from jengatrack.storage.repository import JengaTrackRepository

    with session_scope() as db:
        if not JengaTrackRepository(db).test_connection():
            rprint("[red]Database connection failed[/red]")
            raise typer.Exit(1)

    rprint("[green]Database connection OK[/green]")


@app.command()
def create_profile(
    phone: str = typer.Argument(..., help="WhatsApp number (E.164, e.g. +256700000001)"),
    name: Optional[str] = typer.Option(None, help="Display name (defaults to 'User <last 4 digits>')"),
):
    """
    Register a WhatsApp number as a profile.
    """
    from jengatrack.storage.repository import JengaTrackRepository

    with session_scope() as db:
        repo = JengaTrackRepository(db)

        existing = repo.get_user_by_whatsapp(phone)
        if existing.error:
            rprint(f"[red]Lookup failed: {existing.error.message}[/red]")
            raise typer.Exit(1)
        if existing.data:
            rprint(f"[yellow]Profile already exists for {existing.data.whatsapp_number}[/yellow]")
            rprint(f"  ID: {existing.data.id}")
            raise typer.Exit(1)

        result = repo.create_user_profile(phone, name)
        if result.error:
            rprint(f"[red]Failed to create profile: {result.error.message}[/red]")
            raise typer.Exit(1)

        rprint("[green]Profile created:[/green]")
        rprint(f"  ID: {result.data.id}")
        rprint(f"  WhatsApp: {result.data.whatsapp_number}")
        rprint(f"  Name: {result.data.full_name}")


@app.command()
def parse(
    message: str = typer.Argument(..., help="Message text"),
    media_url: Optional[str] = typer.Option(None, help="Attached media URL"),
):
    """
    Show how a WhatsApp message would be classified. Nothing is stored.
    """
    from jengatrack.messaging.intent_parser import meets_confidence_threshold, parse_intent

    parsed = parse_intent(message, media_url=media_url)

    table = Table(title="Parsed intent")
    table.add_column("Field", style="dim")
    table.add_column("Value")
    for key, value in parsed.to_dict().items():
        if value is not None:
            table.add_row(key, str(value))
    table.add_row("meets threshold", "yes" if meets_confidence_threshold(parsed) else "no")

    console.print(table)


@app.command()
def summary(
    profile_id: str = typer.Argument(..., help="Profile UUID"),
):
    """
    Show the budget summary of a profile's active project.
    """
    profile_uuid = parse_uuid(profile_id, "profile ID")

    from jengatrack.dashboard.service import DashboardService
    from jengatrack.messaging.replies import format_number
    from jengatrack.storage.repository import DataAccessError, JengaTrackRepository

    with session_scope() as db:
        try:
            result = DashboardService(JengaTrackRepository(db)).profile_summary(profile_uuid)
        except DataAccessError as e:
            rprint(f"[red]Summary failed: {e.message}[/red]")
            raise typer.Exit(1)

    if result.project_id is None:
        rprint(f"[yellow]{result.project_name}[/yellow]")
        raise typer.Exit(0)

    currency = get_settings().DEFAULT_CURRENCY
    table = Table(title=result.project_name)
    table.add_column("Metric", style="dim")
    table.add_column("Value", justify="right")
    table.add_row("Budget", f"{currency} {format_number(result.budget)}")
    table.add_row("Spent", f"{currency} {format_number(result.total_spent)}")
    table.add_row("Remaining", f"{currency} {format_number(result.remaining)}")
    table.add_row("Used", f"{result.percent_used}%")
    table.add_row("Expenses", str(result.expense_count))
    table.add_row("Open tasks", str(result.task_count))

    console.print(table)


@app.command()
def send_test(
    to: str = typer.Argument(..., help="Recipient phone number (E.164 format)"),
    text: str = typer.Option("Hello from JengaTrack!", help="Message text"),
):
    """
    Send a test message through the configured provider.
    """
    from jengatrack.messaging.providers import TwilioWhatsAppProvider, get_provider

    try:
        provider = get_provider(get_settings())
    except ConfigurationError as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(1)

    async def send():
        try:
            return await provider.send_text(to, text)
        finally:
            if isinstance(provider, TwilioWhatsAppProvider):
                await provider.close()

    response = asyncio.run(send())

    if response.success:
        rprint("[green]Message sent successfully![/green]")
        rprint(f"  Provider: {type(provider).__name__}")
        rprint(f"  Message ID: {response.message_id}")
    else:
        rprint("[red]Failed to send message[/red]")
        rprint(f"  Error: {response.error_message}")
        rprint(f"  Code: {response.error_code}")
        raise typer.Exit(1)


@app.command()
def messages(
    limit: int = typer.Option(20, help="Maximum number of messages to show"),
):
    """
    List the most recent WhatsApp messages.
    """
    from jengatrack.storage.repository import JengaTrackRepository

    with session_scope() as db:
        rows = JengaTrackRepository(db).get_recent_messages(limit)

        if not rows:
            rprint("[yellow]No messages found[/yellow]")
            raise typer.Exit(0)

        table = Table(title="WhatsApp messages")
        table.add_column("Received", style="dim")
        table.add_column("Dir")
        table.add_column("User", style="dim")
        table.add_column("Intent")
        table.add_column("Processed")
        table.add_column("Body")

        for row in rows:
            body = row.message_body or "-"
            table.add_row(
                row.received_at.strftime("%Y-%m-%d %H:%M") if row.received_at else "-",
                "IN" if row.direction == "inbound" else "OUT",
                str(row.user_id)[:8] + "..." if row.user_id else "-",
                row.intent or "-",
                "Yes" if row.processed else "No",
                body if len(body) <= 50 else body[:47] + "...",
            )

    console.print(table)


if __name__ == "__main__":
    app()
