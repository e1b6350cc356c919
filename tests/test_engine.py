"""
Reminder engine tests.
Tests for window fan-out, deduplication, cleanup and failure isolation.
"""

import sqlite3
from datetime import timedelta

import pytest

from codesync.database.models import Channel, ReminderKind, Subscriber
from codesync.database.repository import (
    ContestRepository,
    ReminderLedger,
    SubscriberRepository,
)
from codesync.notifiers.base import NotificationResult
from codesync.reminders.engine import ReminderEngine, TickResult
from codesync.reminders.windows import NEAR_WINDOW, ReminderWindow


@pytest.fixture
def contests(db):
    return ContestRepository(db)


@pytest.fixture
def subscribers(db):
    return SubscriberRepository(db)


@pytest.fixture
def ledger(db):
    return ReminderLedger(db)


@pytest.fixture
def engine(contests, subscribers, ledger, fetcher, email_notifier, sms_notifier, now):
    return ReminderEngine(
        contests,
        subscribers,
        ledger,
        fetcher,
        email_notifier,
        sms_notifier,
        clock=lambda: now,
    )


@pytest.fixture
def alice(subscribers):
    return subscribers.upsert(Subscriber(email="alice@example.com"))


class TestFarReminder:
    """Test the day-ahead reminder batch."""

    def test_sends_once_and_records(self, engine, fetcher, ledger, email_notifier,
                                    make_contest, alice, now):
        """Should email every subscriber once and record the batch."""
        contest = make_contest(hours_until_start=20)
        fetcher.fetch_all.return_value = [contest]

        result = engine.run_tick()

        assert result.batches_sent == 1
        assert result.emails_sent == 1
        email_notifier.send.assert_called_once()
        to, subject, html = email_notifier.send.call_args[0]
        assert to == "alice@example.com"
        assert subject == f"Contest Reminder: {contest.name}"
        assert "Starting in 20 hours" in html

        record = ledger.get(contest.contest_id, ReminderKind.FAR)
        assert record.sent_at == now
        assert record.snapshot == contest.to_dict()

    def test_second_tick_sends_nothing(self, engine, fetcher, email_notifier,
                                       make_contest, alice):
        """Should not resend a batch already in the ledger."""
        fetcher.fetch_all.return_value = [make_contest(hours_until_start=20)]

        engine.run_tick()
        email_notifier.send.reset_mock()
        result = engine.run_tick()

        assert result.batches_sent == 0
        assert result.batches_skipped == 1
        email_notifier.send.assert_not_called()

    def test_many_ticks_across_window(self, engine, fetcher, email_notifier,
                                      make_contest, alice, now):
        """Should send one batch while the contest stays in the window."""
        contest = make_contest(hours_until_start=26)
        fetcher.fetch_all.return_value = [contest]

        for hours_later in range(0, 8):
            engine.run_tick(now + timedelta(hours=hours_later))

        assert email_notifier.send.call_count == 1

    @pytest.mark.parametrize("hours", [18, 27.5, 10])
    def test_outside_window(self, engine, fetcher, email_notifier, make_contest,
                            alice, hours):
        """Should send nothing outside both windows."""
        fetcher.fetch_all.return_value = [make_contest(hours_until_start=hours)]

        result = engine.run_tick()

        assert result.batches_sent == 0
        email_notifier.send.assert_not_called()

    def test_upper_bound_included(self, engine, fetcher, email_notifier,
                                  make_contest, alice):
        """Should include a contest exactly at the far upper bound."""
        fetcher.fetch_all.return_value = [make_contest(hours_until_start=27)]

        assert engine.run_tick().batches_sent == 1


class TestNearReminder:
    """Test the starting-soon reminder batch."""

    def test_minutes_display(self, engine, fetcher, email_notifier, make_contest, alice):
        """Should show minutes when the contest is under ninety minutes away."""
        contest = make_contest(hours_until_start=0.75)
        fetcher.fetch_all.return_value = [contest]

        engine.run_tick()

        _, subject, html = email_notifier.send.call_args[0]
        assert subject == f"Starting Soon: {contest.name}"
        assert "45 MINUTES" in html

    def test_hours_display(self, engine, fetcher, email_notifier, make_contest, alice):
        """Should show hours further out."""
        fetcher.fetch_all.return_value = [make_contest(hours_until_start=3.2)]

        engine.run_tick()

        html = email_notifier.send.call_args[0][2]
        assert "3 HOURS" in html

    def test_lower_bound_excluded(self, engine, fetcher, email_notifier,
                                  make_contest, alice):
        """Should skip contests within six minutes of start."""
        fetcher.fetch_all.return_value = [make_contest(hours_until_start=0.1)]

        assert engine.run_tick().batches_sent == 0
        email_notifier.send.assert_not_called()

    def test_upper_bound_included(self, engine, fetcher, make_contest, alice, ledger):
        """Should include a contest exactly six hours out."""
        contest = make_contest(hours_until_start=6)
        fetcher.fetch_all.return_value = [contest]

        engine.run_tick()

        assert ledger.exists(contest.contest_id, ReminderKind.NEAR) is True

    def test_overlapping_windows_send_both(self, contests, subscribers, ledger, fetcher,
                                           email_notifier, sms_notifier, make_contest,
                                           alice, now):
        """Should send one batch per matching window."""
        engine = ReminderEngine(
            contests, subscribers, ledger, fetcher, email_notifier, sms_notifier,
            windows=(ReminderWindow(ReminderKind.FAR, 2, 27), NEAR_WINDOW),
            clock=lambda: now,
        )
        fetcher.fetch_all.return_value = [make_contest(hours_until_start=4)]

        result = engine.run_tick()

        assert result.batches_sent == 2
        assert email_notifier.send.call_count == 2


class TestChannels:
    """Test per-subscriber channel selection."""

    def test_sms_subscriber(self, engine, fetcher, subscribers, email_notifier,
                            sms_notifier, make_contest):
        """Should text subscribers who chose SMS with a phone on file."""
        subscribers.upsert(Subscriber(
            email="bob@example.com",
            phone="+15551234567",
            channels=frozenset({Channel.SMS}),
        ))
        contest = make_contest(hours_until_start=20)
        fetcher.fetch_all.return_value = [contest]

        result = engine.run_tick()

        assert result.sms_sent == 1
        email_notifier.send.assert_not_called()
        phone, text = sms_notifier.send.call_args[0]
        assert phone == "+15551234567"
        assert text.startswith(f"Contest in ~20h: {contest.name} on Codeforces")
        assert text.endswith(contest.url)

    def test_sms_without_phone_is_inert(self, engine, fetcher, subscribers,
                                        email_notifier, sms_notifier, ledger,
                                        make_contest):
        """Should send nothing to an SMS-only subscriber without a phone."""
        subscribers.upsert(Subscriber(
            email="carol@example.com",
            channels=frozenset({Channel.SMS}),
        ))
        contest = make_contest(hours_until_start=20)
        fetcher.fetch_all.return_value = [contest]

        result = engine.run_tick()

        email_notifier.send.assert_not_called()
        sms_notifier.send.assert_not_called()
        assert result.batches_sent == 1
        assert ledger.exists(contest.contest_id, ReminderKind.FAR) is True

    def test_both_channels(self, engine, fetcher, subscribers, email_notifier,
                           sms_notifier, make_contest):
        subscribers.upsert(Subscriber(
            email="dave@example.com",
            phone="+15557654321",
            channels=frozenset({Channel.EMAIL, Channel.SMS}),
        ))
        fetcher.fetch_all.return_value = [make_contest(hours_until_start=20)]

        result = engine.run_tick()

        assert result.emails_sent == 1
        assert result.sms_sent == 1


class TestFailureIsolation:
    """Test that send failures never abort a batch."""

    def test_failures_do_not_stop_batch(self, engine, fetcher, subscribers, ledger,
                                        email_notifier, make_contest):
        """Should keep sending after a raised exception or failed result."""
        for name in ("a", "b", "c"):
            subscribers.upsert(Subscriber(email=f"{name}@example.com"))
        email_notifier.send.side_effect = [
            RuntimeError("boom"),
            NotificationResult(success=False, channel="email", error="SMTP error"),
            NotificationResult(success=True, channel="email"),
        ]
        contest = make_contest(hours_until_start=20)
        fetcher.fetch_all.return_value = [contest]

        result = engine.run_tick()

        assert email_notifier.send.call_count == 3
        assert result.emails_sent == 1
        assert result.emails_failed == 2
        assert result.batches_sent == 1
        assert ledger.get(contest.contest_id, ReminderKind.FAR).sent_at is not None

    def test_store_error_propagates(self, engine, db, fetcher, make_contest, alice):
        """Should surface store errors to the caller."""
        fetcher.fetch_all.return_value = [make_contest(hours_until_start=20)]
        db.close()

        with pytest.raises(sqlite3.Error):
            engine.run_tick()


class TestDeduplication:
    """Test ledger claim behavior."""

    def test_concurrent_claim_loses(self, engine, fetcher, ledger, email_notifier,
                                    make_contest, alice, now, monkeypatch):
        """Should skip the batch when another run claims it first."""
        contest = make_contest(hours_until_start=20)
        fetcher.fetch_all.return_value = [contest]
        # Simulate a run that claimed the key between the check and the insert
        monkeypatch.setattr(ledger, "is_settled", lambda contest_id, kind, cutoff: False)
        ledger.insert_if_absent(
            contest.contest_id, ReminderKind.FAR, contest.to_dict(), claimed_at=now
        )

        result = engine.run_tick()

        assert result.batches_skipped == 1
        assert result.batches_sent == 0
        email_notifier.send.assert_not_called()

    def test_stale_claim_is_resent(self, engine, fetcher, ledger, email_notifier,
                                   make_contest, alice, now):
        """Should resend a batch whose claim was never marked sent."""
        contest = make_contest(hours_until_start=20)
        fetcher.fetch_all.return_value = [contest]
        # A run that crashed mid-batch two hours ago
        ledger.insert_if_absent(
            contest.contest_id,
            ReminderKind.FAR,
            contest.to_dict(),
            claimed_at=now - timedelta(hours=2),
        )

        result = engine.run_tick()

        assert result.batches_sent == 1
        assert email_notifier.send.call_count == 1
        record = ledger.get(contest.contest_id, ReminderKind.FAR)
        assert record.claimed_at == now
        assert record.sent_at == now

    def test_live_claim_is_respected(self, engine, fetcher, ledger, email_notifier,
                                     make_contest, alice, now):
        """Should leave a recent unsent claim to the run that holds it."""
        contest = make_contest(hours_until_start=20)
        fetcher.fetch_all.return_value = [contest]
        ledger.insert_if_absent(
            contest.contest_id,
            ReminderKind.FAR,
            contest.to_dict(),
            claimed_at=now - timedelta(minutes=5),
        )

        result = engine.run_tick()

        assert result.batches_skipped == 1
        email_notifier.send.assert_not_called()

    def test_takeover_sends_once(self, engine, fetcher, ledger, email_notifier,
                                 make_contest, alice, now):
        """Should not resend after the taken-over batch completes."""
        contest = make_contest(hours_until_start=20)
        fetcher.fetch_all.return_value = [contest]
        ledger.insert_if_absent(
            contest.contest_id,
            ReminderKind.FAR,
            contest.to_dict(),
            claimed_at=now - timedelta(hours=2),
        )

        engine.run_tick()
        engine.run_tick(now + timedelta(hours=1))

        assert email_notifier.send.call_count == 1

    def test_dry_run(self, contests, subscribers, ledger, fetcher, email_notifier,
                     sms_notifier, make_contest, alice, now):
        """Should neither send nor write the ledger in dry-run mode."""
        engine = ReminderEngine(
            contests, subscribers, ledger, fetcher, email_notifier, sms_notifier,
            dry_run=True, clock=lambda: now,
        )
        fetcher.fetch_all.return_value = [make_contest(hours_until_start=20)]

        result = engine.run_tick()

        assert result.dry_run is True
        assert result.batches_sent == 0
        email_notifier.send.assert_not_called()
        assert ledger.list_all() == []


class TestContestCache:
    """Test contest refresh and cleanup during a tick."""

    def test_no_subscribers(self, engine, fetcher, contests, email_notifier, make_contest):
        """Should still refresh contests but send nothing."""
        fetcher.fetch_all.return_value = [make_contest(hours_until_start=20)]

        result = engine.run_tick()

        assert result.no_subscribers is True
        assert result.contests_fetched == 1
        assert len(contests.list_all()) == 1
        email_notifier.send.assert_not_called()

    def test_last_write_wins(self, engine, fetcher, contests, make_contest, alice):
        """Should overwrite a cached contest with the latest fetch."""
        contests.upsert_many([make_contest(hours_until_start=20)])
        rescheduled = make_contest(hours_until_start=26)
        fetcher.fetch_all.return_value = [rescheduled]

        engine.run_tick()

        cached = contests.list_all()
        assert len(cached) == 1
        assert cached[0].start_time == rescheduled.start_time

    def test_expired_contests_removed(self, engine, contests, make_contest, alice):
        """Should drop contests that started more than the grace period ago."""
        contests.upsert_many([make_contest(hours_until_start=-3, name="Old Round")])

        result = engine.run_tick()

        assert result.contests_expired == 1
        assert contests.list_all() == []

    def test_ledger_cleanup(self, engine, fetcher, ledger, make_contest, alice):
        """Should remove ledger records only after the grace period."""
        running = make_contest(hours_until_start=-0.5, name="Running Round")
        finished = make_contest(hours_until_start=-2, name="Finished Round")
        for contest in (running, finished):
            ledger.insert_if_absent(contest.contest_id, ReminderKind.NEAR, contest.to_dict())
        fetcher.fetch_all.return_value = [running, finished]

        result = engine.run_tick()

        assert result.ledger_cleaned == 1
        assert ledger.exists(running.contest_id, ReminderKind.NEAR) is True
        assert ledger.exists(finished.contest_id, ReminderKind.NEAR) is False


class TestTickResult:
    def test_to_dict(self):
        data = TickResult(batches_sent=2).to_dict()
        assert data["batches_sent"] == 2
        assert data["no_subscribers"] is False
