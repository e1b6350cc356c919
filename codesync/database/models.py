"""
Data models for CodeSync application.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Any


class Channel(str, Enum):
    """Notification channel a subscriber can opt into."""

    EMAIL = "email"
    SMS = "sms"


class ReminderKind(str, Enum):
    """Reminder window kinds tracked by the ledger."""

    FAR = "24hr"
    NEAR = "1hr"


@dataclass
class Contest:
    """Upcoming contest on a third-party platform."""

    platform: str  # "Codeforces", "CodeChef", "LeetCode"
    name: str
    start_time: datetime
    duration: timedelta
    url: str
    updated_at: Optional[datetime] = None

    @property
    def contest_id(self) -> str:
        """Stable identity used as the merge and ledger key."""
        return f"{self.platform}:{self.url}"

    @property
    def duration_hours(self) -> float:
        return self.duration.total_seconds() / 3600

    def hours_until_start(self, now: datetime) -> float:
        """Hours from ``now`` until the contest starts (negative once started)."""
        return (self.start_time - now).total_seconds() / 3600

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the API and ledger snapshots."""
        return {
            "platform": self.platform,
            "name": self.name,
            "startTime": self.start_time.astimezone(timezone.utc).isoformat(),
            "duration": self.duration_hours,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Contest":
        return cls(
            platform=data["platform"],
            name=data["name"],
            start_time=datetime.fromisoformat(data["startTime"]),
            duration=timedelta(hours=data["duration"]),
            url=data["url"],
        )


@dataclass
class Subscriber:
    """Subscriber with notification settings."""

    email: str
    phone: Optional[str] = None
    channels: frozenset[Channel] = field(
        default_factory=lambda: frozenset({Channel.EMAIL})
    )
    subscribed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def wants_email(self) -> bool:
        return Channel.EMAIL in self.channels

    @property
    def wants_sms(self) -> bool:
        """SMS is only deliverable when a phone number is on file."""
        return Channel.SMS in self.channels and bool(self.phone)


@dataclass
class ReminderRecord:
    """Ledger entry marking a reminder batch for deduplication."""

    contest_id: str
    kind: ReminderKind
    contest_start: datetime
    snapshot: dict[str, Any]
    claimed_at: datetime
    sent_at: Optional[datetime] = None
    id: Optional[int] = None
