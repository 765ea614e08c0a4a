"""SQLite database operations for TripSplit."""

import json
import sqlite3
from datetime import datetime
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from .exceptions import StorageError
from .models import Friend, SummaryRecord, Trip

# Storage keys shared with the original browser app's localStorage layout
FRIENDS_KEY = "tripSplitFriends"
TRIPS_KEY = "tripSplitTrips"

_friends_adapter = TypeAdapter(list[Friend])
_trips_adapter = TypeAdapter(list[Trip])


class Database:
    """SQLite database manager."""

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        # Key-value blob store
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        # Generated trip summaries
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS trip_summaries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                trip_id TEXT NOT NULL,
                trip_hash TEXT NOT NULL UNIQUE,
                summary TEXT NOT NULL,
                model TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Blob operations
    # ========================================================================

    def get_blob(self, key: str) -> str | None:
        """Get a stored blob by key."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT value FROM store WHERE key = ?", (key,))
        row = cursor.fetchone()
        return str(row["value"]) if row else None

    def set_blob(self, key: str, value: str):
        """Store a blob, replacing any previous value."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO store (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value, datetime.now().isoformat()),
        )
        self.conn.commit()

    # ========================================================================
    # Friend and trip operations
    # ========================================================================

    def load_friends(self) -> list[Friend]:
        """Load all friends (empty list if nothing stored yet)."""
        return self._load_list(FRIENDS_KEY, _friends_adapter)

    def save_friends(self, friends: list[Friend]):
        """Replace the stored friend list."""
        self.set_blob(FRIENDS_KEY, self._dump_list(friends, _friends_adapter))

    def load_trips(self) -> list[Trip]:
        """Load all trips (empty list if nothing stored yet)."""
        return self._load_list(TRIPS_KEY, _trips_adapter)

    def save_trips(self, trips: list[Trip]):
        """Replace the stored trip list."""
        self.set_blob(TRIPS_KEY, self._dump_list(trips, _trips_adapter))

    def _load_list(self, key: str, adapter: TypeAdapter) -> list:
        value = self.get_blob(key)
        if value is None:
            return []

        try:
            return adapter.validate_json(value)
        except ValidationError as e:
            raise StorageError(f"Stored data under '{key}' is not valid: {e}") from e

    @staticmethod
    def _dump_list(items: list, adapter: TypeAdapter) -> str:
        data = adapter.dump_python(
            items, mode="json", by_alias=True, exclude_none=True
        )
        return json.dumps(data, ensure_ascii=False)

    # ========================================================================
    # Summary cache operations
    # ========================================================================

    def get_summary(self, trip_hash: str) -> SummaryRecord | None:
        """Get a cached summary by trip content hash."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, trip_id, trip_hash, summary, model, created_at
            FROM trip_summaries
            WHERE trip_hash = ?
            """,
            (trip_hash,),
        )
        row = cursor.fetchone()
        if not row:
            return None

        return SummaryRecord(
            id=row["id"],
            trip_id=row["trip_id"],
            trip_hash=row["trip_hash"],
            summary=row["summary"],
            model=row["model"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def save_summary(self, record: SummaryRecord) -> int:
        """Save a generated summary."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO trip_summaries (
                trip_id, trip_hash, summary, model, created_at
            ) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(trip_hash) DO UPDATE SET
                summary = excluded.summary,
                model = excluded.model,
                created_at = excluded.created_at
            """,
            (
                record.trip_id,
                record.trip_hash,
                record.summary,
                record.model,
                record.created_at.isoformat(),
            ),
        )
        self.conn.commit()
        row_id = cursor.lastrowid
        if row_id is None:
            raise RuntimeError("Failed to insert trip summary")
        return row_id

    def delete_summaries(self, trip_id: str) -> int:
        """Delete all cached summaries for a trip."""
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM trip_summaries WHERE trip_id = ?", (trip_id,))
        self.conn.commit()
        return cursor.rowcount
