"""
Repository classes for CRUD operations.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from .connection import Database
from .models import Channel, Contest, ReminderKind, ReminderRecord, Subscriber


def to_db_time(value: datetime) -> str:
    """Normalize to a UTC ISO string so that text ordering matches time ordering."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ContestRepository:
    """Contest cache keyed by (platform, url)."""

    def __init__(self, db: Database):
        self.db = db

    def upsert_many(
        self, contests: list[Contest], updated_at: Optional[datetime] = None
    ) -> None:
        """Insert or overwrite contests by identity."""
        if not contests:
            return
        updated = to_db_time(updated_at or datetime.now(timezone.utc))
        cursor = self.db.connection.cursor()
        cursor.executemany(
            """
            INSERT INTO contests
            (platform, url, name, start_time, duration_seconds, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(platform, url) DO UPDATE SET
                name = excluded.name,
                start_time = excluded.start_time,
                duration_seconds = excluded.duration_seconds,
                updated_at = excluded.updated_at
            """,
            [
                (
                    c.platform,
                    c.url,
                    c.name,
                    to_db_time(c.start_time),
                    int(c.duration.total_seconds()),
                    updated,
                )
                for c in contests
            ],
        )
        self.db.connection.commit()

    def delete_older_than(self, instant: datetime) -> int:
        """Delete contests that started before ``instant``."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "DELETE FROM contests WHERE start_time < ?",
            (to_db_time(instant),),
        )
        self.db.connection.commit()
        return cursor.rowcount

    def get(self, platform: str, url: str) -> Optional[Contest]:
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM contests WHERE platform = ? AND url = ?",
            (platform, url),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_contest(row)

    def list_all(self) -> list[Contest]:
        """List all cached contests, soonest first."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM contests ORDER BY start_time, platform, name")
        return [self._row_to_contest(row) for row in cursor.fetchall()]

    def _row_to_contest(self, row) -> Contest:
        """Convert database row to Contest."""
        return Contest(
            platform=row["platform"],
            name=row["name"],
            start_time=from_db_time(row["start_time"]),
            duration=timedelta(seconds=row["duration_seconds"]),
            url=row["url"],
            updated_at=from_db_time(row["updated_at"]),
        )


class SubscriberRepository:
    """CRUD operations for subscribers."""

    def __init__(self, db: Database):
        self.db = db

    def upsert(self, subscriber: Subscriber) -> Subscriber:
        """Create subscriber or update phone and channels of an existing one."""
        now = datetime.now(timezone.utc)
        if subscriber.subscribed_at is None:
            subscriber.subscribed_at = now
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO subscribers (email, phone, channels, subscribed_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(email) DO UPDATE SET
                phone = excluded.phone,
                channels = excluded.channels,
                updated_at = excluded.updated_at
            """,
            (
                subscriber.email,
                subscriber.phone,
                self._dump_channels(subscriber.channels),
                to_db_time(subscriber.subscribed_at),
                to_db_time(subscriber.updated_at) if subscriber.updated_at else None,
            ),
        )
        self.db.connection.commit()
        return self.get(subscriber.email)

    def get(self, email: str) -> Optional[Subscriber]:
        """Get subscriber by email."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM subscribers WHERE email = ?", (email,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_subscriber(row)

    def delete(self, email: str) -> bool:
        """Delete subscriber. Returns False if the email was not subscribed."""
        cursor = self.db.connection.cursor()
        cursor.execute("DELETE FROM subscribers WHERE email = ?", (email,))
        self.db.connection.commit()
        return cursor.rowcount > 0

    def list_all(self) -> list[Subscriber]:
        """List all subscribers."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM subscribers ORDER BY subscribed_at, email")
        return [self._row_to_subscriber(row) for row in cursor.fetchall()]

    def count(self) -> int:
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT COUNT(*) FROM subscribers")
        return cursor.fetchone()[0]

    @staticmethod
    def _dump_channels(channels: frozenset[Channel]) -> str:
        return json.dumps(sorted(c.value for c in channels))

    def _row_to_subscriber(self, row) -> Subscriber:
        """Convert database row to Subscriber."""
        return Subscriber(
            email=row["email"],
            phone=row["phone"],
            channels=frozenset(Channel(c) for c in json.loads(row["channels"])),
            subscribed_at=from_db_time(row["subscribed_at"]),
            updated_at=from_db_time(row["updated_at"]),
        )


class ReminderLedger:
    """Record of reminder batches already triggered per (contest, kind)."""

    def __init__(self, db: Database):
        self.db = db

    def exists(self, contest_id: str, kind: ReminderKind) -> bool:
        """Check whether a batch was already claimed for this contest and kind."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT 1 FROM sent_reminders
            WHERE contest_id = ? AND kind = ?
            LIMIT 1
            """,
            (contest_id, kind.value),
        )
        return cursor.fetchone() is not None

    def is_settled(
        self, contest_id: str, kind: ReminderKind, lease_cutoff: datetime
    ) -> bool:
        """
        Check whether a batch is sent or held by a claim newer than ``lease_cutoff``.

        An unsent claim older than the cutoff belongs to a run that died
        mid-batch and may be taken over.
        """
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT 1 FROM sent_reminders
            WHERE contest_id = ? AND kind = ?
              AND (sent_at IS NOT NULL OR claimed_at >= ?)
            LIMIT 1
            """,
            (contest_id, kind.value, to_db_time(lease_cutoff)),
        )
        return cursor.fetchone() is not None

    def insert_if_absent(
        self,
        contest_id: str,
        kind: ReminderKind,
        snapshot: dict[str, Any],
        claimed_at: Optional[datetime] = None,
        lease_cutoff: Optional[datetime] = None,
    ) -> bool:
        """
        Atomically claim a (contest, kind) pair.

        Args:
            contest_id: Contest identity
            kind: Reminder window kind
            snapshot: Contest as seen when the batch was claimed
            claimed_at: Claim timestamp, defaults to now
            lease_cutoff: Unsent claims made before this instant are taken
                over; when omitted an existing record is never replaced

        Returns:
            True if this call inserted or took over the record, False if
            the pair is already sent or held by a live claim
        """
        claimed_at = claimed_at or datetime.now(timezone.utc)
        params = [
            contest_id,
            kind.value,
            to_db_time(from_db_time(snapshot["startTime"])),
            json.dumps(snapshot),
            to_db_time(claimed_at),
        ]
        if lease_cutoff is None:
            on_conflict = "DO NOTHING"
        else:
            on_conflict = """DO UPDATE SET
                contest_start = excluded.contest_start,
                snapshot = excluded.snapshot,
                claimed_at = excluded.claimed_at
            WHERE sent_reminders.sent_at IS NULL
              AND sent_reminders.claimed_at < ?"""
            params.append(to_db_time(lease_cutoff))

        cursor = self.db.connection.cursor()
        cursor.execute(
            f"""
            INSERT INTO sent_reminders
            (contest_id, kind, contest_start, snapshot, claimed_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(contest_id, kind) {on_conflict}
            """,
            params,
        )
        self.db.connection.commit()
        return cursor.rowcount == 1

    def mark_sent(
        self,
        contest_id: str,
        kind: ReminderKind,
        sent_at: Optional[datetime] = None,
    ) -> None:
        """Record completion of the batch."""
        sent_at = sent_at or datetime.now(timezone.utc)
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            UPDATE sent_reminders
            SET sent_at = ?
            WHERE contest_id = ? AND kind = ?
            """,
            (to_db_time(sent_at), contest_id, kind.value),
        )
        self.db.connection.commit()

    def get(self, contest_id: str, kind: ReminderKind) -> Optional[ReminderRecord]:
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM sent_reminders WHERE contest_id = ? AND kind = ?",
            (contest_id, kind.value),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def list_all(self) -> list[ReminderRecord]:
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM sent_reminders ORDER BY id")
        return [self._row_to_record(row) for row in cursor.fetchall()]

    def delete_by_contest(self, contest_id: str) -> int:
        """Delete all ledger records for a contest."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "DELETE FROM sent_reminders WHERE contest_id = ?",
            (contest_id,),
        )
        self.db.connection.commit()
        return cursor.rowcount

    def delete_started_before(self, instant: datetime) -> int:
        """Delete records for contests that started before ``instant``."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "DELETE FROM sent_reminders WHERE contest_start < ?",
            (to_db_time(instant),),
        )
        self.db.connection.commit()
        return cursor.rowcount

    def _row_to_record(self, row) -> ReminderRecord:
        """Convert database row to ReminderRecord."""
        return ReminderRecord(
            id=row["id"],
            contest_id=row["contest_id"],
            kind=ReminderKind(row["kind"]),
            contest_start=from_db_time(row["contest_start"]),
            snapshot=json.loads(row["snapshot"]),
            claimed_at=from_db_time(row["claimed_at"]),
            sent_at=from_db_time(row["sent_at"]),
        )
