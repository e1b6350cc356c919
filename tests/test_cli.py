"""
CLI command tests.
"""

from unittest.mock import patch

import pytest

from codesync.cli import (
    add_subscriber,
    list_contests,
    refresh_contests,
    remove_subscriber,
)
from codesync.database.models import Channel
from codesync.database.repository import ContestRepository, SubscriberRepository


class TestSubscriberCommands:
    def test_add_subscriber(self, db, caplog):
        """Should save the subscriber without attempting any welcome send."""
        with patch("codesync.notifiers.email.smtplib.SMTP_SSL") as mock_ssl, \
             patch("codesync.notifiers.sms.requests.post") as mock_post:
            subscriber = add_subscriber(db, "alice@example.com", "+15551234567", ["email", "sms"])

        assert subscriber.channels == frozenset({Channel.EMAIL, Channel.SMS})
        assert SubscriberRepository(db).count() == 1
        mock_ssl.assert_not_called()
        mock_post.assert_not_called()
        assert "not configured" not in caplog.text

    def test_remove_subscriber(self, db):
        add_subscriber(db, "alice@example.com")

        assert remove_subscriber(db, "alice@example.com") is True
        assert remove_subscriber(db, "alice@example.com") is False


class TestContestCommands:
    def test_refresh_unknown_platform(self, db):
        with pytest.raises(ValueError, match="Unknown platforms"):
            refresh_contests(db, ["topcoder"])

    def test_refresh(self, db, make_contest):
        contest = make_contest(hours_until_start=20)
        with patch("codesync.cli.ContestFetcher") as mock_fetcher:
            mock_fetcher.return_value.fetch_all.return_value = [contest]
            result = refresh_contests(db, ["codeforces"])

        mock_fetcher.assert_called_once_with(platforms=["codeforces"])
        assert result == {"fetched": 1, "expired": 0}
        assert ContestRepository(db).list_all()[0].name == contest.name

    def test_list_contests_filter(self, db, make_contest):
        ContestRepository(db).upsert_many([
            make_contest(name="Round A", platform="Codeforces"),
            make_contest(name="Starters", platform="CodeChef"),
        ])

        assert [c.name for c in list_contests(db, platform="codechef")] == ["Starters"]
        assert len(list_contests(db)) == 2
