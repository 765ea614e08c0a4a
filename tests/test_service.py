"""Tests for TripService layer."""

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from tripsplit.clients.openai_client import FAILURE_MESSAGE, MISSING_KEY_MESSAGE
from tripsplit.config import Settings
from tripsplit.db import Database
from tripsplit.exceptions import (
    ExpenseNotFoundError,
    FriendNotFoundError,
    InvalidExpenseError,
    InvalidFriendError,
    InvalidTripError,
    MemberInvolvedError,
    TripNotFoundError,
)
from tripsplit.trips.service import TripService


def summary_count(db: Database) -> int:
    """Count cached summaries."""
    return db.conn.execute("SELECT COUNT(*) FROM trip_summaries").fetchone()[0]


@pytest.fixture
def mock_settings(tmp_path):
    """Create settings pointing at a temporary database."""
    return Settings(
        openai_api_key="test_openai_key",
        database_path=tmp_path / "test.db",
        currency_symbol="$",
    )


@pytest.fixture
def mock_db(mock_settings):
    """Create a temporary database."""
    db = Database(mock_settings.database_path)
    yield db
    db.close()


@pytest.fixture
def service(mock_settings, mock_db):
    """Create a TripService instance."""
    return TripService(mock_settings, mock_db)


@pytest.fixture
def friends(service):
    """Add three friends."""
    return [
        service.add_friend("Alice", "alice@example.com", whatsapp="+15550001"),
        service.add_friend("Bob", "bob@example.com"),
        service.add_friend("Carol", "carol@example.com"),
    ]


@pytest.fixture
def trip(service, friends):
    """Create a trip with all three friends."""
    return service.create_trip("Lisbon", date(2025, 6, 1), [f.id for f in friends])


class TestFriends:
    """Tests for friend management."""

    def test_add_and_list(self, service, friends):
        """Friends come back in insertion order."""
        assert [f.name for f in service.list_friends()] == ["Alice", "Bob", "Carol"]
        assert service.get_friend(friends[0].id).whatsapp == "+15550001"

    def test_add_requires_name_and_email(self, service):
        """Blank name or email is rejected."""
        with pytest.raises(InvalidFriendError):
            service.add_friend("  ", "x@example.com")
        with pytest.raises(InvalidFriendError):
            service.add_friend("Dan", "")

    def test_update(self, service, friends):
        """Updating changes only the given fields."""
        updated = service.update_friend(friends[1].id, email="robert@example.com")

        assert updated.name == "Bob"
        assert service.get_friend(friends[1].id).email == "robert@example.com"

    def test_update_unknown(self, service):
        """Updating a missing friend raises."""
        with pytest.raises(FriendNotFoundError):
            service.update_friend("nope", name="X")

    def test_delete_keeps_trip_reference(self, service, friends, trip):
        """Deleted friends still sit in trips and show as Unknown."""
        service.delete_friend(friends[2].id)

        assert len(service.list_friends()) == 2
        assert friends[2].id in service.get_trip(trip.id).members
        assert service.name_lookup()(friends[2].id) == "Unknown"

    def test_resolve_by_name_email_and_prefix(self, service, friends):
        """Friends can be found by name, email or id prefix."""
        alice = friends[0]

        assert service.resolve_friend("alice").id == alice.id
        assert service.resolve_friend("ALICE@example.com").id == alice.id
        assert service.resolve_friend(alice.id[:12]).id == alice.id

        with pytest.raises(FriendNotFoundError):
            service.resolve_friend("Zed")


class TestTrips:
    """Tests for trip management."""

    def test_create_and_get(self, service, trip, friends):
        """A created trip is stored with its members."""
        stored = service.get_trip(trip.id)

        assert stored.name == "Lisbon"
        assert stored.date == date(2025, 6, 1)
        assert stored.members == [f.id for f in friends]
        assert stored.expenses == []

    def test_create_validation(self, service, friends):
        """Trips need a name, members, and known friends."""
        with pytest.raises(InvalidTripError):
            service.create_trip("", date(2025, 1, 1), [friends[0].id])
        with pytest.raises(InvalidTripError):
            service.create_trip("Solo", date(2025, 1, 1), [])
        with pytest.raises(InvalidTripError):
            service.create_trip("Ghosts", date(2025, 1, 1), ["ghost"])

    def test_delete(self, service, trip):
        """Deleted trips are gone."""
        service.delete_trip(trip.id)

        assert service.list_trips() == []
        with pytest.raises(TripNotFoundError):
            service.get_trip(trip.id)

    def test_remove_uninvolved_member(self, service, trip, friends):
        """Members without expenses can be removed."""
        alice, bob, carol = friends
        service.add_expense(trip.id, Decimal("20"), alice.id, [alice.id, bob.id])

        updated = service.update_members(trip.id, [alice.id, bob.id])

        assert updated.members == [alice.id, bob.id]

    def test_remove_involved_member_rejected(self, service, trip, friends):
        """Payers and participants cannot be removed; the error names them."""
        alice, bob, carol = friends
        service.add_expense(trip.id, Decimal("20"), alice.id, [bob.id])

        with pytest.raises(MemberInvolvedError) as exc_info:
            service.update_members(trip.id, [carol.id])

        assert exc_info.value.member_names == ["Alice", "Bob"]
        assert "Cannot remove Alice, Bob" in str(exc_info.value)
        assert service.get_trip(trip.id).members == [f.id for f in friends]

    def test_add_member(self, service, trip, friends):
        """New members must be known friends."""
        dan = service.add_friend("Dan", "dan@example.com")

        updated = service.update_members(trip.id, [*trip.members, dan.id])
        assert updated.members[-1] == dan.id

        with pytest.raises(InvalidTripError):
            service.update_members(trip.id, [*trip.members, "ghost"])


class TestExpenses:
    """Tests for recording and removing expenses."""

    def test_add_expense_persists(self, service, trip, friends):
        """Expenses are stored on the trip with deduplicated participants."""
        alice, bob, _ = friends

        expense = service.add_expense(
            trip.id, Decimal("42.50"), alice.id, [bob.id, bob.id], description="Taxi"
        )

        stored = service.get_trip(trip.id).expenses
        assert len(stored) == 1
        assert stored[0].id == expense.id
        assert stored[0].amount == Decimal("42.5")
        assert stored[0].participants == [bob.id]
        assert stored[0].description == "Taxi"

    @pytest.mark.parametrize("raw", ["0", "-5", "NaN", "sNaN", "Infinity", "-Infinity"])
    def test_amount_must_be_positive(self, service, trip, friends, raw):
        """Zero, negative and non-finite amounts are rejected."""
        with pytest.raises(InvalidExpenseError):
            service.add_expense(trip.id, Decimal(raw), friends[0].id, [friends[1].id])

        assert service.get_trip(trip.id).expenses == []

    def test_participants_required(self, service, trip, friends):
        """An expense must be split with someone."""
        with pytest.raises(InvalidExpenseError):
            service.add_expense(trip.id, Decimal("10"), friends[0].id, [])

    def test_payer_and_participants_must_be_members(self, service, trip, friends):
        """Non-members can neither pay nor share."""
        outsider = service.add_friend("Eve", "eve@example.com")

        with pytest.raises(InvalidExpenseError, match="Eve"):
            service.add_expense(trip.id, Decimal("10"), outsider.id, [friends[0].id])
        with pytest.raises(InvalidExpenseError, match="Eve"):
            service.add_expense(trip.id, Decimal("10"), friends[0].id, [outsider.id])

    def test_delete_expense(self, service, trip, friends):
        """Deleting an expense frees up its members."""
        alice, bob, carol = friends
        expense = service.add_expense(trip.id, Decimal("30"), carol.id, [carol.id])

        service.delete_expense(trip.id, expense.id)

        assert service.get_trip(trip.id).expenses == []
        service.update_members(trip.id, [alice.id, bob.id])

    def test_delete_unknown_expense(self, service, trip):
        """Deleting a missing expense raises."""
        with pytest.raises(ExpenseNotFoundError):
            service.delete_expense(trip.id, "missing")


class TestSettlement:
    """Tests for get_settlement and sharing."""

    def test_settlement_recomputed_after_changes(self, service, trip, friends):
        """Balances follow every add and delete."""
        alice, bob, carol = friends
        first = service.add_expense(
            trip.id, Decimal("300"), alice.id, [alice.id, bob.id, carol.id]
        )

        result = service.get_settlement(trip.id)
        balances = {b.member: b.amount for b in result.balances}
        assert balances[alice.id] == Decimal("200")
        assert len(result.settlements) == 2

        service.delete_expense(trip.id, first.id)

        result = service.get_settlement(trip.id)
        assert all(b.amount == 0 for b in result.balances)
        assert result.settlements == []

    def test_share_text(self, service, trip, friends):
        """Share text uses friend names and the configured currency."""
        alice, bob, carol = friends
        service.add_expense(
            trip.id, Decimal("90"), alice.id, [bob.id, carol.id], description="Dinner"
        )

        text = service.share_text(trip.id)

        assert '"Lisbon"' in text
        assert "Total spent: $90.00" in text
        assert "- Dinner: $90.00 (Paid by Alice)" in text
        assert "- Bob should pay Alice $45.00" in text
        assert "- Carol should pay Alice $45.00" in text

    def test_share_links(self, service, trip):
        """Email link goes to every member; WhatsApp link carries the text."""
        links = service.share_links(trip.id)

        assert links.email.startswith(
            "mailto:alice@example.com,bob@example.com,carol@example.com?subject="
        )
        assert "Expense%20Summary%3A%20Lisbon" in links.email
        assert links.whatsapp.startswith("https://api.whatsapp.com/send?text=")
        assert "Everyone%20is%20settled%20up" in links.whatsapp


class TestGenerateSummary:
    """Tests for generate_summary caching."""

    @patch("tripsplit.trips.service.TripSummaryGenerator")
    def test_generates_and_caches(self, mock_generator_class, service, trip):
        """A generated summary is reused until the trip changes."""
        mock_generator = MagicMock()
        mock_generator.generate_summary.return_value = "What a trip!"
        mock_generator_class.return_value = mock_generator

        assert service.generate_summary(trip.id) == "What a trip!"
        assert service.generate_summary(trip.id) == "What a trip!"

        mock_generator.generate_summary.assert_called_once()
        mock_generator_class.assert_called_once_with(
            api_key="test_openai_key", model="gpt-4o-mini"
        )

    @patch("tripsplit.trips.service.TripSummaryGenerator")
    def test_trip_change_invalidates_cache(
        self, mock_generator_class, service, trip, friends
    ):
        """Editing the trip produces a new summary."""
        mock_generator = MagicMock()
        mock_generator.generate_summary.side_effect = ["First", "Second"]
        mock_generator_class.return_value = mock_generator

        assert service.generate_summary(trip.id) == "First"
        service.add_expense(trip.id, Decimal("5"), friends[0].id, [friends[1].id])
        assert service.generate_summary(trip.id) == "Second"

    @patch("tripsplit.trips.service.TripSummaryGenerator")
    def test_renaming_member_invalidates_cache(
        self, mock_generator_class, service, trip, friends
    ):
        """A renamed friend gets a summary that uses the new name."""
        bob = friends[1]
        mock_generator = MagicMock()
        mock_generator.generate_summary.side_effect = [
            "Alice and Bob had fun",
            "Alice and Robert had fun",
        ]
        mock_generator_class.return_value = mock_generator

        service.generate_summary(trip.id)
        service.update_friend(bob.id, name="Robert")
        second = service.generate_summary(trip.id)

        assert "Robert" in second
        assert mock_generator.generate_summary.call_count == 2
        lookup = mock_generator.generate_summary.call_args.args[1]
        assert lookup(bob.id) == "Robert"

    @patch("tripsplit.trips.service.TripSummaryGenerator")
    def test_deleting_member_invalidates_cache(
        self, mock_generator_class, service, trip, friends
    ):
        """A deleted friend shows as Unknown, which needs a new summary."""
        mock_generator = MagicMock()
        mock_generator.generate_summary.side_effect = ["First", "Second"]
        mock_generator_class.return_value = mock_generator

        assert service.generate_summary(trip.id) == "First"
        service.delete_friend(friends[2].id)
        assert service.generate_summary(trip.id) == "Second"

    @patch("tripsplit.trips.service.TripSummaryGenerator")
    def test_currency_change_invalidates_cache(
        self, mock_generator_class, service, trip, mock_settings, mock_db
    ):
        """Summaries mention amounts, so the currency symbol is part of the key."""
        mock_generator = MagicMock()
        mock_generator.generate_summary.side_effect = ["In dollars", "In euros"]
        mock_generator_class.return_value = mock_generator
        euro_service = TripService(
            mock_settings.model_copy(update={"currency_symbol": "€"}), mock_db
        )

        assert service.generate_summary(trip.id) == "In dollars"
        assert euro_service.generate_summary(trip.id) == "In euros"
        assert service.generate_summary(trip.id) == "In dollars"

    @patch("tripsplit.trips.service.TripSummaryGenerator")
    def test_refresh_skips_cache(self, mock_generator_class, service, trip):
        """--refresh always calls the generator."""
        mock_generator = MagicMock()
        mock_generator.generate_summary.side_effect = ["First", "Second"]
        mock_generator_class.return_value = mock_generator

        service.generate_summary(trip.id)

        assert service.generate_summary(trip.id, refresh=True) == "Second"

    @patch("tripsplit.trips.service.TripSummaryGenerator")
    def test_fallback_not_cached(self, mock_generator_class, service, trip, mock_db):
        """Fallback messages are returned but never cached."""
        mock_generator = MagicMock()
        mock_generator.generate_summary.side_effect = [FAILURE_MESSAGE, "Recovered"]
        mock_generator_class.return_value = mock_generator

        assert service.generate_summary(trip.id) == FAILURE_MESSAGE
        assert summary_count(mock_db) == 0
        assert service.generate_summary(trip.id) == "Recovered"

    def test_missing_key_falls_back(self, tmp_path, mock_db, friends):
        """Without an API key the fixed message is returned."""
        settings = Settings(openai_api_key=None, database_path=tmp_path / "test.db")
        service = TripService(settings, mock_db)
        trip = service.create_trip("Rome", date(2025, 1, 1), [friends[0].id])

        assert service.generate_summary(trip.id) == MISSING_KEY_MESSAGE

    def test_delete_trip_drops_summaries(self, service, trip, mock_db):
        """Deleting a trip clears its cached summaries."""
        with patch("tripsplit.trips.service.TripSummaryGenerator") as mock_class:
            mock_class.return_value.generate_summary.return_value = "Cached"
            service.generate_summary(trip.id)

        assert summary_count(mock_db) == 1
        service.delete_trip(trip.id)
        assert summary_count(mock_db) == 0
