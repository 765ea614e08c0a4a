"""Core balance and settlement logic for a trip's expenses.

Everything here is a pure function of its inputs. Balances and settlements
are never stored; callers recompute them from the trip on every read.
"""

import hashlib
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from ..models import (
    Balance,
    Expense,
    MemberId,
    Settlement,
    Trip,
    TripSettlement,
)

logger = logging.getLogger(__name__)

# Smallest currency amount treated as a real balance rather than rounding noise.
SETTLEMENT_TOLERANCE = Decimal("0.01")


@dataclass
class _Position:
    """Outstanding debt or credit of one member during matching."""

    member_id: MemberId
    remaining: Decimal


def _unique(member_ids: Iterable[MemberId]) -> list[MemberId]:
    """Drop duplicate ids, keeping first-seen order."""
    return list(dict.fromkeys(member_ids))


def compute_balances(
    members: Sequence[MemberId], expenses: Sequence[Expense]
) -> dict[MemberId, Decimal]:
    """
    Compute each member's net balance over a list of expenses.

    The payer is credited the full amount and every participant is debited
    an equal share (amount / number of participants). A payer who also
    participates gets both the credit and the debit.

    Expenses with no participants, or that reference someone outside
    `members`, break the trip invariant. They are skipped (contributing
    zero to every balance) and logged, so the result still sums to zero.

    Args:
        members: Trip member ids, in insertion order
        expenses: Trip expenses, in recorded order

    Returns:
        Mapping of every member id to its signed balance, in member order
    """
    balances: dict[MemberId, Decimal] = {
        member_id: Decimal("0") for member_id in members
    }

    for expense in expenses:
        participants = _unique(expense.participants)

        if not participants:
            logger.warning(f"Skipping expense {expense.id}: no participants")
            continue

        outsiders = [
            member_id
            for member_id in [expense.payer, *participants]
            if member_id not in balances
        ]
        if outsiders:
            logger.warning(
                f"Skipping expense {expense.id}: "
                f"{', '.join(_unique(outsiders))} not a trip member"
            )
            continue

        balances[expense.payer] += expense.amount

        share = expense.amount / len(participants)
        for member_id in participants:
            balances[member_id] -= share

    logger.debug(f"Computed {len(balances)} balances from {len(expenses)} expenses")

    return balances


def compute_settlements(balances: Mapping[MemberId, Decimal]) -> list[Settlement]:
    """
    Reduce balances to a list of debtor -> creditor payments.

    Greedy matching: the largest remaining debt is paid toward the largest
    remaining credit until one side runs out. This is a heuristic and does
    not guarantee the minimum number of payments.

    Both sides are sorted by magnitude, largest first. The sort is stable,
    so equal magnitudes keep the iteration order of `balances`.

    Args:
        balances: Signed balance per member (positive = is owed)

    Returns:
        Settlements in the order they were matched, each with a positive amount
    """
    debtors = [
        _Position(member_id, -amount)
        for member_id, amount in balances.items()
        if amount <= -SETTLEMENT_TOLERANCE
    ]
    creditors = [
        _Position(member_id, amount)
        for member_id, amount in balances.items()
        if amount >= SETTLEMENT_TOLERANCE
    ]

    # list.sort is stable, also with reverse=True
    debtors.sort(key=lambda position: position.remaining, reverse=True)
    creditors.sort(key=lambda position: position.remaining, reverse=True)

    settlements: list[Settlement] = []
    i = j = 0
    while i < len(debtors) and j < len(creditors):
        debtor = debtors[i]
        creditor = creditors[j]
        transfer = min(debtor.remaining, creditor.remaining)

        # Both remainders are at least the tolerance here, so a remainder of
        # exactly one cent is still paid out and the loop always advances.
        if transfer >= SETTLEMENT_TOLERANCE:
            settlements.append(
                Settlement(
                    from_member=debtor.member_id,
                    to_member=creditor.member_id,
                    amount=transfer,
                )
            )
            debtor.remaining -= transfer
            creditor.remaining -= transfer

        if debtor.remaining < SETTLEMENT_TOLERANCE:
            i += 1
        if creditor.remaining < SETTLEMENT_TOLERANCE:
            j += 1

    logger.debug(
        f"Matched {len(debtors)} debtors and {len(creditors)} creditors "
        f"into {len(settlements)} settlements"
    )

    return settlements


def settle_trip(trip: Trip) -> TripSettlement:
    """Compute balances and settlements for a trip in one pass."""
    balances = compute_balances(trip.members, trip.expenses)
    return TripSettlement(
        balances=[
            Balance(member=member_id, amount=amount)
            for member_id, amount in balances.items()
        ],
        settlements=compute_settlements(balances),
    )


def is_member_involved(member_id: MemberId, expenses: Iterable[Expense]) -> bool:
    """Check whether a member paid for or shares any of the expenses."""
    return any(
        expense.payer == member_id or member_id in expense.participants
        for expense in expenses
    )


def total_spent(expenses: Iterable[Expense]) -> Decimal:
    """Sum the amounts of all expenses."""
    return sum((expense.amount for expense in expenses), Decimal("0"))


def compute_trip_hash(
    trip: Trip,
    name_lookup: Callable[[MemberId], str] | None = None,
    extra: Iterable[str] = (),
) -> str:
    """
    Compute a content hash for a trip.

    Participant order does not matter; expense order does. With a
    `name_lookup`, the resolved display names are hashed too, so renaming or
    deleting a friend changes the hash. `extra` carries anything else that
    shapes a generated summary, such as the currency symbol and model.
    """
    parts = [trip.name, trip.date.isoformat(), ",".join(trip.members)]
    if name_lookup is not None:
        parts.append(",".join(name_lookup(member_id) for member_id in trip.members))

    for expense in trip.expenses:
        participants = sorted(_unique(expense.participants))
        parts.append(
            f"{expense.id}:{expense.description}:{expense.amount}:"
            f"{expense.payer}:{','.join(participants)}"
        )
        if name_lookup is not None:
            parts.append(
                f"{name_lookup(expense.payer)}:"
                f"{','.join(name_lookup(member_id) for member_id in participants)}"
            )

    parts.extend(extra)

    combined = "|".join(parts)
    return hashlib.sha256(combined.encode()).hexdigest()
