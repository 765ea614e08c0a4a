"""MCP server for TripSplit: exposes the trip workflow as assistant tools."""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from mcp.server.fastmcp import FastMCP

from .config import load_settings
from .db import Database
from .exceptions import TripSplitError
from .trips.service import TripService
from .trips.settlement import total_spent
from .trips.share import format_money, format_signed

logger = logging.getLogger(__name__)

mcp_app = FastMCP("tripsplit")

WORKFLOW_INSTRUCTIONS = """\
You are helping a group split the costs of a trip. Follow this workflow:

1. FIND: Call list_trips to see the trips. Use list_friends to map names to people.

2. REVIEW: Call show_trip with the trip name or id. Show the user the
   expenses, each member's balance and the settlements.

3. RECORD: For each new expense the user mentions, call add_expense with the
   amount, who paid and who shares it (default: every member). Expenses are
   always split equally. If an amount or payer is unclear, ask the user.
   Use remove_expense to fix mistakes.

4. SETTLE: Call show_trip again and read out who pays whom.

5. SHARE: Offer share_text for a digest to paste into a group chat, or
   generate_summary for a narrative recap.

Positive balance = is owed money, negative = owes money.\
"""


@dataclass
class SessionState:
    """Holds the service between MCP tool calls within a single conversation."""

    service: TripService | None = None
    db: Database | None = None


_state = SessionState()


def _ensure_service() -> TripService:
    """Lazily initialize the TripService (loads .env config)."""
    if _state.service is None:
        settings = load_settings()
        _state.db = Database(settings.database_path)
        _state.service = TripService(settings, _state.db)
    return _state.service


# ---------------------------------------------------------------------------
# MCP Tools
# ---------------------------------------------------------------------------


@mcp_app.tool()
def list_friends() -> str:
    """List all friends with their ids and emails."""
    try:
        service = _ensure_service()
        friends = service.list_friends()

        if not friends:
            return "No friends yet."

        lines = ["Friends:"]
        for friend in friends:
            lines.append(f"  - {friend.name} <{friend.email}> (id: {friend.id})")
        return "\n".join(lines)
    except TripSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to list friends: {e}"


@mcp_app.tool()
def list_trips() -> str:
    """List all trips with their dates and totals."""
    try:
        service = _ensure_service()
        trips = service.list_trips()

        if not trips:
            return "No trips yet."

        symbol = service.settings.currency_symbol
        lines = ["Trips:"]
        for trip in trips:
            lines.append(
                f"  - {trip.name} | {trip.date} | {len(trip.members)} members | "
                f"{len(trip.expenses)} expenses | "
                f"{format_money(total_spent(trip.expenses), symbol)} (id: {trip.id})"
            )
        return "\n".join(lines)
    except TripSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to list trips: {e}"


@mcp_app.tool()
def show_trip(trip: str) -> str:
    """Show a trip's expenses, balances and settlements.

    Args:
        trip: Trip name or id.
    """
    try:
        service = _ensure_service()
        found = service.resolve_trip(trip)
        result = service.get_settlement(found.id)
        lookup = service.name_lookup()
        symbol = service.settings.currency_symbol

        lines = [
            f"{found.name} ({found.date})",
            f"  Total spent: {format_money(total_spent(found.expenses), symbol)}",
            "",
            "Expenses:",
        ]
        for expense in found.expenses:
            shared = ", ".join(lookup(m) for m in expense.participants)
            lines.append(
                f"  - {expense.description or 'Unspecified Expense'} | "
                f"{format_money(expense.amount, symbol)} | paid by "
                f"{lookup(expense.payer)} | split with {shared} (id: {expense.id})"
            )
        if not found.expenses:
            lines.append("  (none)")

        lines.append("")
        lines.append("Balances:")
        for balance in result.balances:
            lines.append(f"  - {lookup(balance.member)}: {format_signed(balance.amount)}")

        lines.append("")
        lines.append("Settlements:")
        for s in result.settlements:
            lines.append(
                f"  - {lookup(s.from_member)} pays {lookup(s.to_member)} "
                f"{format_money(s.amount, symbol)}"
            )
        if not result.settlements:
            lines.append("  All settled up!")

        return "\n".join(lines)
    except TripSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to show trip: {e}"


@mcp_app.tool()
def add_expense(
    trip: str,
    amount: str,
    paid_by: str,
    split_with: list[str] | None = None,
    description: str = "",
) -> str:
    """Record an expense split equally among some or all trip members.

    Args:
        trip: Trip name or id.
        amount: Amount paid, e.g. "42.50".
        paid_by: Name, email or id of the friend who paid.
        split_with: Names, emails or ids sharing the cost. Defaults to every member.
        description: What the expense was for.
    """
    try:
        service = _ensure_service()
        found = service.resolve_trip(trip)

        try:
            value = Decimal(amount)
        except InvalidOperation:
            return f"Error: '{amount}' is not a number."

        payer_id = service.resolve_friend(paid_by).id
        participants = (
            [service.resolve_friend(ref).id for ref in split_with]
            if split_with
            else list(found.members)
        )

        expense = service.add_expense(
            found.id, value, payer_id, participants, description=description
        )
        return (
            f"Added {format_money(expense.amount, service.settings.currency_symbol)} "
            f"'{expense.description or 'Unspecified Expense'}' to {found.name} "
            f"(id: {expense.id})"
        )
    except TripSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to add expense: {e}"


@mcp_app.tool()
def remove_expense(trip: str, expense_id: str) -> str:
    """Remove an expense from a trip.

    Args:
        trip: Trip name or id.
        expense_id: Expense id (from show_trip output).
    """
    try:
        service = _ensure_service()
        found = service.resolve_trip(trip)
        expense = service.delete_expense(found.id, expense_id)
        return f"Removed '{expense.description or expense.id}' from {found.name}."
    except TripSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to remove expense: {e}"


@mcp_app.tool()
def share_text(trip: str) -> str:
    """Build the plain-text expense digest for a trip, ready to paste.

    Args:
        trip: Trip name or id.
    """
    try:
        service = _ensure_service()
        return service.share_text(service.resolve_trip(trip).id)
    except TripSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to build share text: {e}"


@mcp_app.tool()
def generate_summary(trip: str, refresh: bool = False) -> str:
    """Generate a narrative recap of a trip.

    Args:
        trip: Trip name or id.
        refresh: Write a new summary even if one is cached.
    """
    try:
        service = _ensure_service()
        return service.generate_summary(service.resolve_trip(trip).id, refresh=refresh)
    except TripSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to generate summary: {e}"


# ---------------------------------------------------------------------------
# MCP Prompt
# ---------------------------------------------------------------------------


@mcp_app.prompt()
def trip_workflow() -> str:
    """Orchestration instructions for recording and settling trip expenses."""
    return WORKFLOW_INSTRUCTIONS


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_server():
    """Start the MCP server (stdio transport)."""
    mcp_app.run(transport="stdio")
