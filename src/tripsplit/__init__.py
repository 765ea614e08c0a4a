"""TripSplit - Split trip expenses with friends and settle up."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .db import Database
from .models import (
    Balance,
    Expense,
    Friend,
    Settlement,
    Trip,
    TripSettlement,
)
from .trips.service import TripService
from .trips.settlement import compute_balances, compute_settlements, settle_trip

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "Balance",
    "Expense",
    "Friend",
    "Settlement",
    "Trip",
    "TripSettlement",
    "TripService",
    "compute_balances",
    "compute_settlements",
    "settle_trip",
]
