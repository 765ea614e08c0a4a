"""Plain-text trip digests and share links for email and WhatsApp."""

from collections.abc import Callable, Iterable
from decimal import Decimal
from urllib.parse import quote

from ..models import MemberId, Settlement, Trip
from .settlement import SETTLEMENT_TOLERANCE, total_spent

WHATSAPP_SEND_URL = "https://api.whatsapp.com/send"


def format_money(amount: Decimal, symbol: str = "₹") -> str:
    """Format an amount with a currency symbol prefix and two decimals."""
    return f"{symbol}{amount:.2f}"


def format_signed(amount: Decimal) -> str:
    """Format a balance with an explicit sign, e.g. +12.50 or -3.00.

    Residue below the settlement tolerance shows as +0.00.
    """
    if abs(amount) < SETTLEMENT_TOLERANCE:
        return "+0.00"
    if amount >= 0:
        return f"+{amount:.2f}"
    return f"{amount:.2f}"


def format_share_text(
    trip: Trip,
    settlements: list[Settlement],
    name_lookup: Callable[[MemberId], str],
    currency_symbol: str = "₹",
) -> str:
    """
    Build the human-readable digest that gets shared with trip members.

    Args:
        trip: The trip to describe
        settlements: Settlements computed for the trip
        name_lookup: Maps a member id to a display name
        currency_symbol: Prefix for every amount

    Returns:
        Multi-line plain text
    """
    lines = [
        f'Hi everyone, here\'s the expense summary for our trip: "{trip.name}"!',
        "",
        f"Total spent: {format_money(total_spent(trip.expenses), currency_symbol)}",
        "",
        "--- Expenses ---",
    ]

    for expense in trip.expenses:
        description = expense.description or "Unspecified Expense"
        lines.append(
            f"- {description}: {format_money(expense.amount, currency_symbol)} "
            f"(Paid by {name_lookup(expense.payer)})"
        )

    lines.append("")
    lines.append("--- Time to Settle Up! ---")

    if not settlements:
        lines.append("Everyone is settled up. Great job!")
    else:
        for settlement in settlements:
            lines.append(
                f"- {name_lookup(settlement.from_member)} should pay "
                f"{name_lookup(settlement.to_member)} "
                f"{format_money(settlement.amount, currency_symbol)}"
            )

    return "\n".join(lines) + "\n"


def build_email_link(emails: Iterable[str], subject: str, body: str) -> str:
    """Build a mailto: link with a prefilled subject and body."""
    recipients = ",".join(email for email in emails if email)
    return f"mailto:{recipients}?subject={quote(subject)}&body={quote(body)}"


def build_whatsapp_link(body: str) -> str:
    """Build a WhatsApp share link with prefilled text."""
    return f"{WHATSAPP_SEND_URL}?text={quote(body)}"
