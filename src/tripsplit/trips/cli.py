"""CLI commands for trips, expenses and settling up."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, InvalidOperation

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..config import load_settings
from ..db import Database
from ..exceptions import TripSplitError
from ..models import Trip
from .service import TripService
from .settlement import total_spent
from .share import format_money, format_signed
from .ui import confirm, select_friend_interactive, select_friends_interactive

app = typer.Typer(
    name="trips",
    help="Manage trips, record expenses and settle up",
)

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@contextmanager
def open_service(verbose: bool = False) -> Iterator[TripService]:
    """
    Load settings, open the database and yield a TripService.

    TripSplit errors are printed and exit with status 1. Unexpected errors
    are re-raised with --verbose.
    """
    setup_logging(verbose)
    db = None

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        yield TripService(settings, db)
    except (typer.Exit, typer.Abort):
        raise
    except TripSplitError as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if db is not None:
            db.close()


def parse_amount(value: str) -> Decimal:
    """Parse a CLI amount into a Decimal."""
    try:
        amount = Decimal(value)
    except InvalidOperation as e:
        raise typer.BadParameter(f"'{value}' is not a number") from e
    if not amount.is_finite():
        raise typer.BadParameter(f"'{value}' is not a number")
    return amount


def colored_balance(amount: Decimal) -> str:
    """Balance with sign, green when owed and red when owing."""
    text = format_signed(amount)
    color = "red" if text.startswith("-") else "green"
    return f"[{color}]{text}[/{color}]"


def display_trip(service: TripService, trip: Trip):
    """Display a trip's expenses, balances and settlements."""
    symbol = service.settings.currency_symbol
    lookup = service.name_lookup()
    result = service.get_settlement(trip.id)

    console.print(f"\n[bold]{trip.name}[/bold] [dim]({trip.date}, id {trip.id[:8]})[/dim]")
    console.print(
        f"  Members: {', '.join(lookup(m) for m in trip.members) or '[dim]none[/dim]'}"
    )
    console.print(
        f"  Total spent: [bold cyan]{format_money(total_spent(trip.expenses), symbol)}[/bold cyan]"
    )
    console.print()

    expenses = Table(title="Expenses", show_header=True, header_style="bold magenta")
    expenses.add_column("ID", style="dim", width=8)
    expenses.add_column("Description", style="cyan", width=30)
    expenses.add_column("Amount", justify="right", width=12)
    expenses.add_column("Paid by", style="yellow")
    expenses.add_column("Split with", no_wrap=False)

    for expense in trip.expenses:
        desc = expense.description or "Unspecified Expense"
        expenses.add_row(
            expense.id[:8],
            desc[:30] + "..." if len(desc) > 30 else desc,
            format_money(expense.amount, symbol),
            lookup(expense.payer),
            ", ".join(lookup(m) for m in expense.participants),
        )

    if trip.expenses:
        console.print(expenses)
    else:
        console.print("[dim]No expenses yet.[/dim]")

    balances = Table(title="Balances", show_header=True, header_style="bold magenta")
    balances.add_column("Member", style="cyan")
    balances.add_column("Balance", justify="right", width=12)
    for balance in result.balances:
        balances.add_row(lookup(balance.member), colored_balance(balance.amount))

    console.print()
    console.print(balances)

    console.print("\n[bold]Settlements:[/bold]")
    if not result.settlements:
        console.print("  [green]All settled up![/green]")
    for settlement in result.settlements:
        console.print(
            f"  {lookup(settlement.from_member)} pays "
            f"[bold]{format_money(settlement.amount, symbol)}[/bold] to "
            f"{lookup(settlement.to_member)}"
        )


@app.command("list")
def list_trips(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List all trips."""
    with open_service(verbose) as service:
        trips = service.list_trips()

        if not trips:
            console.print("[yellow]No trips yet![/yellow]")
            console.print('[dim]Run "tripsplit trips create" to plan your next adventure.[/dim]')
            return

        symbol = service.settings.currency_symbol
        table = Table(title="My Trips", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim", width=8)
        table.add_column("Name", style="cyan")
        table.add_column("Date")
        table.add_column("Members", justify="right")
        table.add_column("Expenses", justify="right")
        table.add_column("Total", justify="right")

        for trip in trips:
            table.add_row(
                trip.id[:8],
                trip.name,
                trip.date.isoformat(),
                str(len(trip.members)),
                str(len(trip.expenses)),
                format_money(total_spent(trip.expenses), symbol),
            )

        console.print(table)


@app.command()
def create(
    name: str = typer.Argument(..., help="Trip name"),
    trip_date: datetime = typer.Option(
        ..., "--date", "-d", formats=["%Y-%m-%d"], help="Trip date (YYYY-MM-DD)"
    ),
    members: list[str] = typer.Option(
        None, "--member", "-m", help="Friend name, email or id (repeatable)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Create a trip.

    Without --member, friends are picked interactively.
    """
    with open_service(verbose) as service:
        if members:
            member_ids = [service.resolve_friend(ref).id for ref in members]
        else:
            console.print("\n[bold blue]Who is coming along?[/bold blue]")
            member_ids = select_friends_interactive(service.list_friends())

        trip = service.create_trip(name, trip_date.date(), member_ids)
        console.print(
            f"\n[bold green]✓ Created trip '{trip.name}'[/bold green] [dim]({trip.id})[/dim]"
        )


@app.command()
def show(
    trip_ref: str = typer.Argument(..., help="Trip name or id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show a trip with balances and settlements."""
    with open_service(verbose) as service:
        display_trip(service, service.resolve_trip(trip_ref))


@app.command()
def delete(
    trip_ref: str = typer.Argument(..., help="Trip name or id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Delete a trip and all of its expenses."""
    with open_service(verbose) as service:
        trip = service.resolve_trip(trip_ref)

        if not yes and not confirm(
            f"Delete '{trip.name}' and its {len(trip.expenses)} expenses?"
        ):
            console.print("[yellow]Cancelled.[/yellow]")
            return

        service.delete_trip(trip.id)
        console.print(f"[bold green]✓ Deleted trip '{trip.name}'[/bold green]")


@app.command()
def members(
    trip_ref: str = typer.Argument(..., help="Trip name or id"),
    add: list[str] = typer.Option(None, "--add", "-a", help="Friend to add (repeatable)"),
    remove: list[str] = typer.Option(
        None, "--remove", "-r", help="Friend to remove (repeatable)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Add or remove trip members.

    Members who paid for or share an expense cannot be removed until their
    expenses are deleted.
    """
    with open_service(verbose) as service:
        trip = service.resolve_trip(trip_ref)
        to_add = [service.resolve_friend(ref).id for ref in add or []]
        to_remove = {service.resolve_friend(ref).id for ref in remove or []}

        member_ids = [m for m in trip.members if m not in to_remove]
        member_ids += [m for m in to_add if m not in member_ids]

        updated = service.update_members(trip.id, member_ids)
        lookup = service.name_lookup()
        console.print(
            f"[bold green]✓ Members of '{updated.name}':[/bold green] "
            f"{', '.join(lookup(m) for m in updated.members)}"
        )


@app.command("add-expense")
def add_expense(
    trip_ref: str = typer.Argument(..., help="Trip name or id"),
    amount: str = typer.Argument(..., help="Amount paid"),
    description: str = typer.Option("", "--description", "-D", help="What it was for"),
    payer: str | None = typer.Option(
        None, "--payer", "-p", help="Who paid (prompted when omitted)"
    ),
    split_with: list[str] = typer.Option(
        None, "--split-with", "-s", help="Who shares it (repeatable, default: everyone)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Record an expense split equally among some or all members."""
    value = parse_amount(amount)

    with open_service(verbose) as service:
        trip = service.resolve_trip(trip_ref)
        friends = {f.id: f for f in service.list_friends()}
        trip_friends = [friends[m] for m in trip.members if m in friends]

        if payer:
            payer_id = service.resolve_friend(payer).id
        else:
            console.print("\n[bold blue]Who paid?[/bold blue]")
            payer_id = select_friend_interactive(
                trip_friends,
                prompt="Paid by: ",
                default=trip_friends[0] if trip_friends else None,
            )
            if payer_id is None:
                console.print("[yellow]No payer selected.[/yellow]")
                return

        if split_with:
            participants = [service.resolve_friend(ref).id for ref in split_with]
        else:
            participants = list(trip.members)

        expense = service.add_expense(
            trip.id, value, payer_id, participants, description=description
        )
        console.print(
            f"[bold green]✓ Added {format_money(expense.amount, service.settings.currency_symbol)}"
            f"[/bold green] to '{trip.name}' [dim]({expense.id[:8]})[/dim]"
        )


@app.command("remove-expense")
def remove_expense(
    trip_ref: str = typer.Argument(..., help="Trip name or id"),
    expense_ref: str = typer.Argument(..., help="Expense id or id prefix"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Remove an expense from a trip."""
    with open_service(verbose) as service:
        trip = service.resolve_trip(trip_ref)
        matches = [e for e in trip.expenses if e.id.startswith(expense_ref)]
        expense_id = matches[0].id if len(matches) == 1 else expense_ref

        expense = service.delete_expense(trip.id, expense_id)
        console.print(
            f"[bold green]✓ Removed '{expense.description or expense.id[:8]}'"
            f"[/bold green] from '{trip.name}'"
        )


@app.command()
def share(
    trip_ref: str = typer.Argument(..., help="Trip name or id"),
    via: str = typer.Option(
        "text", "--via", help="Output format: text, email or whatsapp"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Print the shareable expense digest or a share link."""
    if via not in ("text", "email", "whatsapp"):
        raise typer.BadParameter("--via must be one of: text, email, whatsapp")

    with open_service(verbose) as service:
        trip = service.resolve_trip(trip_ref)

        if via == "text":
            console.print(service.share_text(trip.id), markup=False, highlight=False)
            return

        links = service.share_links(trip.id)
        link = links.email if via == "email" else links.whatsapp
        console.print(link, markup=False, highlight=False, soft_wrap=True)


@app.command()
def summary(
    trip_ref: str = typer.Argument(..., help="Trip name or id"),
    refresh: bool = typer.Option(
        False, "--refresh", help="Generate a new summary even if one is cached"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Generate a fun narrative summary of a trip with GPT."""
    with open_service(verbose) as service:
        trip = service.resolve_trip(trip_ref)

        console.print("\n[bold blue]Writing trip summary...[/bold blue]")
        text = service.generate_summary(trip.id, refresh=refresh)

        console.print(Panel(Text(text), title=f"✨ {trip.name}", expand=False))
