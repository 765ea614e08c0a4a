"""Custom exceptions for TripSplit."""


class TripSplitError(Exception):
    """Base exception for all TripSplit errors."""

    pass


class ConfigurationError(TripSplitError):
    """Raised when configuration is invalid or missing."""

    pass


class StorageError(TripSplitError):
    """Raised when the local store holds data that cannot be decoded."""

    pass


class NotFoundError(TripSplitError):
    """Base class for lookups that find nothing."""

    pass


class FriendNotFoundError(NotFoundError):
    """Raised when a friend id is not in the friend list."""

    def __init__(self, friend_id: str):
        self.friend_id = friend_id
        super().__init__(f"Friend {friend_id} not found")


class TripNotFoundError(NotFoundError):
    """Raised when a trip id is not in the trip list."""

    def __init__(self, trip_id: str):
        self.trip_id = trip_id
        super().__init__(f"Trip {trip_id} not found")


class ExpenseNotFoundError(NotFoundError):
    """Raised when an expense id is not part of a trip."""

    def __init__(self, trip_id: str, expense_id: str):
        self.trip_id = trip_id
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} not found in trip {trip_id}")


class InvalidFriendError(TripSplitError):
    """Raised when friend details are incomplete."""

    pass


class InvalidTripError(TripSplitError):
    """Raised when trip details are incomplete or reference unknown friends."""

    pass


class InvalidExpenseError(TripSplitError):
    """Raised when an expense would break the trip's membership invariant."""

    pass


class MemberInvolvedError(TripSplitError):
    """Raised when removing trip members who appear in existing expenses."""

    def __init__(self, member_names: list[str], message: str | None = None):
        self.member_names = member_names
        super().__init__(
            message
            or f"Cannot remove {', '.join(member_names)}. They are involved in "
            f"existing expenses. Please remove their expenses first."
        )


class APIError(TripSplitError):
    """Base class for API-related errors."""

    pass


class SummaryGenerationError(APIError):
    """Raised when the text-generation API request fails."""

    pass
