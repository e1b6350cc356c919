"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from codesync.data.fetcher import ContestFetcher
from codesync.database.connection import Database
from codesync.database.models import Contest
from codesync.notifiers.base import NotificationResult
from codesync.notifiers.email import EmailNotifier
from codesync.notifiers.sms import SmsNotifier


@pytest.fixture
def now():
    """Fixed evaluation time."""
    return datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    """In-memory database with schema."""
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def make_contest(now):
    """Factory for contests starting a given number of hours after ``now``."""

    def _make(
        hours_until_start: float = 20.0,
        name: str = "Div 2 Round 900",
        platform: str = "Codeforces",
        url: str = None,
        duration_hours: float = 2.0,
    ) -> Contest:
        slug = name.lower().replace(" ", "-")
        return Contest(
            platform=platform,
            name=name,
            start_time=now + timedelta(hours=hours_until_start),
            duration=timedelta(hours=duration_hours),
            url=url or f"https://codeforces.com/contest/{slug}",
        )

    return _make


@pytest.fixture
def fetcher():
    """Contest fetcher returning no contests until configured."""
    mock = MagicMock(spec=ContestFetcher)
    mock.fetch_all.return_value = []
    return mock


@pytest.fixture
def email_notifier():
    """Email notifier that always succeeds."""
    mock = MagicMock(spec=EmailNotifier)
    mock.is_configured = True
    mock.send.return_value = NotificationResult(success=True, channel="email")
    return mock


@pytest.fixture
def sms_notifier():
    """SMS notifier that always succeeds."""
    mock = MagicMock(spec=SmsNotifier)
    mock.is_configured = True
    mock.from_number = "+15550000000"
    mock.send.return_value = NotificationResult(success=True, channel="sms")
    return mock


@pytest.fixture
def codeforces_response():
    """Sample Codeforces contest.list payload."""
    return {
        "status": "OK",
        "result": [
            {
                "id": 2100,
                "name": "Codeforces Round 900 (Div. 2)",
                "phase": "BEFORE",
                "durationSeconds": 7200,
                "startTimeSeconds": 1792580400,
            },
            {
                "id": 2099,
                "name": "Educational Round 170",
                "phase": "FINISHED",
                "durationSeconds": 7200,
                "startTimeSeconds": 1760000000,
            },
        ],
    }
