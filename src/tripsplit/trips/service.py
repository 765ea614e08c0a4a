"""Service layer for friends, trips and their expenses.

Every mutation loads the stored lists, replaces the changed record and writes
the lists back. Balances and settlements are never stored: they are
recomputed from the trip on each call.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import date
from decimal import Decimal

from ..clients.openai_client import FALLBACK_MESSAGES, TripSummaryGenerator
from ..config import Settings
from ..db import Database
from ..exceptions import (
    ExpenseNotFoundError,
    FriendNotFoundError,
    InvalidExpenseError,
    InvalidFriendError,
    InvalidTripError,
    MemberInvolvedError,
    TripNotFoundError,
)
from ..models import (
    Expense,
    Friend,
    MemberId,
    ShareLinks,
    SummaryRecord,
    Trip,
    TripSettlement,
)
from .settlement import compute_trip_hash, is_member_involved, settle_trip
from .share import build_email_link, build_whatsapp_link, format_share_text

logger = logging.getLogger(__name__)

UNKNOWN_FRIEND = "Unknown"


class TripService:
    """Service for managing friends and trips and settling trip expenses."""

    def __init__(self, settings: Settings, database: Database):
        """Initialize the trip service."""
        self.settings = settings
        self.db = database

    # ========================================================================
    # Friends
    # ========================================================================

    def list_friends(self) -> list[Friend]:
        """List all friends in the order they were added."""
        return self.db.load_friends()

    def get_friend(self, friend_id: str) -> Friend:
        """Get a friend by id."""
        for friend in self.db.load_friends():
            if friend.id == friend_id:
                return friend
        raise FriendNotFoundError(friend_id)

    def name_lookup(self) -> Callable[[MemberId], str]:
        """Snapshot friend names into a lookup; deleted friends are "Unknown"."""
        names = {friend.id: friend.name for friend in self.db.load_friends()}
        return lambda friend_id: names.get(friend_id, UNKNOWN_FRIEND)

    def add_friend(
        self,
        name: str,
        email: str,
        whatsapp: str = "",
        photo: str | None = None,
    ) -> Friend:
        """
        Add a new friend.

        Raises:
            InvalidFriendError: If name or email is blank
        """
        if not name.strip() or not email.strip():
            raise InvalidFriendError("A friend needs both a name and an email")

        friend = Friend(name=name, email=email, whatsapp=whatsapp, photo=photo)
        friends = self.db.load_friends()
        friends.append(friend)
        self.db.save_friends(friends)

        logger.info(f"Added friend {friend.name} ({friend.id})")
        return friend

    def update_friend(self, friend_id: str, **changes) -> Friend:
        """
        Update fields of an existing friend.

        Args:
            friend_id: Friend to update
            **changes: Any of name, email, whatsapp, photo

        Returns:
            The updated friend
        """
        friends = self.db.load_friends()
        for index, friend in enumerate(friends):
            if friend.id == friend_id:
                updated = friend.model_copy(update=changes)
                if not updated.name.strip() or not updated.email.strip():
                    raise InvalidFriendError("A friend needs both a name and an email")
                friends[index] = updated
                self.db.save_friends(friends)
                logger.info(f"Updated friend {updated.name} ({friend_id})")
                return updated
        raise FriendNotFoundError(friend_id)

    def delete_friend(self, friend_id: str) -> Friend:
        """
        Delete a friend.

        Trips keep referencing the id; the friend then shows as "Unknown".
        """
        friend = self.get_friend(friend_id)
        friends = [f for f in self.db.load_friends() if f.id != friend_id]
        self.db.save_friends(friends)

        in_trips = [trip.name for trip in self.db.load_trips() if friend_id in trip.members]
        if in_trips:
            logger.warning(
                f"Deleted friend {friend.name} is still a member of: {', '.join(in_trips)}"
            )
        else:
            logger.info(f"Deleted friend {friend.name} ({friend_id})")

        return friend

    # ========================================================================
    # Trips
    # ========================================================================

    def list_trips(self) -> list[Trip]:
        """List all trips in the order they were created."""
        return self.db.load_trips()

    def get_trip(self, trip_id: str) -> Trip:
        """Get a trip by id."""
        for trip in self.db.load_trips():
            if trip.id == trip_id:
                return trip
        raise TripNotFoundError(trip_id)

    def create_trip(self, name: str, trip_date: date, member_ids: list[MemberId]) -> Trip:
        """
        Create a trip with an initial set of members.

        Raises:
            InvalidTripError: If the name is blank, there are no members,
                or a member is not a known friend
        """
        if not name.strip():
            raise InvalidTripError("A trip needs a name")

        members = list(dict.fromkeys(member_ids))
        if not members:
            raise InvalidTripError("A trip needs at least one member")
        self._check_known_friends(members)

        trip = Trip(name=name, date=trip_date, members=members)
        trips = self.db.load_trips()
        trips.append(trip)
        self.db.save_trips(trips)

        logger.info(f"Created trip '{trip.name}' with {len(members)} members")
        return trip

    def delete_trip(self, trip_id: str) -> Trip:
        """Delete a trip and its cached summaries."""
        trip = self.get_trip(trip_id)
        self.db.save_trips([t for t in self.db.load_trips() if t.id != trip_id])
        self.db.delete_summaries(trip_id)

        logger.info(f"Deleted trip '{trip.name}' ({trip_id})")
        return trip

    def update_members(self, trip_id: str, member_ids: list[MemberId]) -> Trip:
        """
        Replace a trip's member list.

        Members referenced by an expense (as payer or participant) cannot be
        removed.

        Raises:
            MemberInvolvedError: Naming every involved member being removed
            InvalidTripError: If a new member is not a known friend
        """
        trip = self.get_trip(trip_id)
        members = list(dict.fromkeys(member_ids))

        removed = [m for m in trip.members if m not in members]
        involved = [m for m in removed if is_member_involved(m, trip.expenses)]
        if involved:
            lookup = self.name_lookup()
            raise MemberInvolvedError([lookup(m) for m in involved])

        if not members:
            raise InvalidTripError("A trip needs at least one member")
        self._check_known_friends([m for m in members if m not in trip.members])

        updated = trip.model_copy(update={"members": members})
        self._save_trip(updated)

        logger.info(
            f"Updated members of '{trip.name}': "
            f"{len(members)} members ({len(removed)} removed)"
        )
        return updated

    # ========================================================================
    # Expenses
    # ========================================================================

    def add_expense(
        self,
        trip_id: str,
        amount: Decimal,
        payer: MemberId,
        participants: list[MemberId],
        description: str = "",
    ) -> Expense:
        """
        Record an expense on a trip.

        Raises:
            InvalidExpenseError: If the amount is not positive, there are no
                participants, or the payer or a participant is not a member
        """
        trip = self.get_trip(trip_id)

        if not amount.is_finite() or amount <= 0:
            raise InvalidExpenseError(f"Amount must be positive, got {amount}")

        split_with = list(dict.fromkeys(participants))
        if not split_with:
            raise InvalidExpenseError("An expense must be split with at least one member")

        outsiders = [m for m in [payer, *split_with] if m not in trip.members]
        if outsiders:
            lookup = self.name_lookup()
            names = ", ".join(lookup(m) for m in dict.fromkeys(outsiders))
            raise InvalidExpenseError(f"Not a member of '{trip.name}': {names}")

        expense = Expense(
            description=description,
            amount=amount,
            payer=payer,
            participants=split_with,
        )
        self._save_trip(trip.model_copy(update={"expenses": [*trip.expenses, expense]}))

        logger.info(
            f"Added expense '{description or expense.id}' ({amount}) to '{trip.name}'"
        )
        return expense

    def delete_expense(self, trip_id: str, expense_id: str) -> Expense:
        """Remove an expense from a trip."""
        trip = self.get_trip(trip_id)

        for expense in trip.expenses:
            if expense.id == expense_id:
                remaining = [e for e in trip.expenses if e.id != expense_id]
                self._save_trip(trip.model_copy(update={"expenses": remaining}))
                logger.info(f"Deleted expense {expense_id} from '{trip.name}'")
                return expense

        raise ExpenseNotFoundError(trip_id, expense_id)

    # ========================================================================
    # Settling up
    # ========================================================================

    def get_settlement(self, trip_id: str) -> TripSettlement:
        """Compute current balances and settlements for a trip."""
        return settle_trip(self.get_trip(trip_id))

    def share_text(self, trip_id: str) -> str:
        """Build the plain-text digest for a trip."""
        trip = self.get_trip(trip_id)
        return format_share_text(
            trip,
            settle_trip(trip).settlements,
            self.name_lookup(),
            self.settings.currency_symbol,
        )

    def share_links(self, trip_id: str) -> ShareLinks:
        """Build email and WhatsApp links that carry the trip digest."""
        trip = self.get_trip(trip_id)
        text = self.share_text(trip_id)

        friends = {friend.id: friend for friend in self.db.load_friends()}
        emails = [friends[m].email for m in trip.members if m in friends]

        return ShareLinks(
            email=build_email_link(emails, f"Expense Summary: {trip.name}", text),
            whatsapp=build_whatsapp_link(text),
        )

    def generate_summary(self, trip_id: str, refresh: bool = False) -> str:
        """
        Get a narrative summary for a trip (cache-first).

        Summaries are cached by a hash of the trip content, member names,
        currency symbol and model, so any change to those produces a fresh
        one. Fallback messages are never cached.

        Args:
            trip_id: Trip to summarize
            refresh: Ignore the cache and generate again

        Returns:
            Summary text or a fallback message
        """
        trip = self.get_trip(trip_id)
        lookup = self.name_lookup()
        trip_hash = compute_trip_hash(
            trip,
            lookup,
            extra=(self.settings.currency_symbol, self.settings.openai_model),
        )

        if not refresh:
            cached = self.db.get_summary(trip_hash)
            if cached:
                logger.info(f"Using cached summary for '{trip.name}'")
                return cached.summary

        generator = TripSummaryGenerator(
            api_key=self.settings.openai_api_key, model=self.settings.openai_model
        )
        summary = generator.generate_summary(
            trip,
            lookup,
            settle_trip(trip).settlements,
            self.settings.currency_symbol,
        )

        if summary not in FALLBACK_MESSAGES:
            self.db.save_summary(
                SummaryRecord(
                    trip_id=trip.id,
                    trip_hash=trip_hash,
                    summary=summary,
                    model=self.settings.openai_model,
                )
            )

        return summary

    # ========================================================================
    # Lookup by reference
    # ========================================================================

    def resolve_friend(self, ref: str) -> Friend:
        """Find a friend by id, id prefix, name or email (case-insensitive)."""
        return _resolve(
            ref,
            self.db.load_friends(),
            lambda f: (f.name, f.email),
            FriendNotFoundError,
        )

    def resolve_trip(self, ref: str) -> Trip:
        """Find a trip by id, id prefix or name (case-insensitive)."""
        return _resolve(ref, self.db.load_trips(), lambda t: (t.name,), TripNotFoundError)

    # ========================================================================
    # Helpers
    # ========================================================================

    def _save_trip(self, updated: Trip):
        trips = [updated if t.id == updated.id else t for t in self.db.load_trips()]
        self.db.save_trips(trips)

    def _check_known_friends(self, member_ids: Iterable[MemberId]):
        known = {friend.id for friend in self.db.load_friends()}
        unknown = [m for m in member_ids if m not in known]
        if unknown:
            raise InvalidTripError(f"Unknown friends: {', '.join(unknown)}")


def _resolve(ref: str, records: list, names, not_found):
    """
    Match a user-supplied reference against records with an id.

    Exact id wins, then a unique case-insensitive name match, then a unique
    id prefix.
    """
    for record in records:
        if record.id == ref:
            return record

    wanted = ref.strip().lower()
    by_name = [r for r in records if wanted in (n.lower() for n in names(r))]
    if len(by_name) == 1:
        return by_name[0]

    by_prefix = [r for r in records if r.id.startswith(ref)]
    if len(by_prefix) == 1:
        return by_prefix[0]

    raise not_found(ref)
