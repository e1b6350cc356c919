"""
SQLite database connection and schema management.
"""

import sqlite3
from pathlib import Path
from typing import Optional


class Database:
    """SQLite database connection manager."""

    def __init__(self, db_path: str):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory DB.
        """
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self) -> None:
        """Establish database connection."""
        if self.db_path != ":memory:":
            # Ensure parent directory exists
            path = Path(self.db_path)
            path.parent.mkdir(parents=True, exist_ok=True)

        # Shared between the HTTP worker threads and the scheduler thread
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the database connection."""
        if self._connection is None:
            raise sqlite3.ProgrammingError("Database connection is closed")
        return self._connection

    def initialize(self) -> None:
        """Create database schema if it doesn't exist."""
        cursor = self.connection.cursor()

        # Contest cache, one row per (platform, url)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS contests (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                platform TEXT NOT NULL,
                url TEXT NOT NULL,
                name TEXT NOT NULL,
                start_time TEXT NOT NULL,
                duration_seconds INTEGER NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (platform, url)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS subscribers (
                email TEXT PRIMARY KEY,
                phone TEXT,
                channels TEXT NOT NULL,
                subscribed_at TEXT NOT NULL,
                updated_at TEXT
            )
        """)

        # Reminder ledger; the unique key is the only dedup guard
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS sent_reminders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                contest_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                contest_start TEXT NOT NULL,
                snapshot TEXT NOT NULL,
                claimed_at TEXT NOT NULL,
                sent_at TEXT,
                UNIQUE (contest_id, kind)
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_contests_start ON contests(start_time)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_sent_reminders_start
            ON sent_reminders(contest_start)
        """)

        self.connection.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
