"""
Reminder engine: one tick refreshes contests and fans out due reminders.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from codesync.data.fetcher import ContestFetcher
from codesync.database.models import Contest, ReminderKind, Subscriber
from codesync.database.repository import (
    ContestRepository,
    ReminderLedger,
    SubscriberRepository,
)
from codesync.notifiers import templates
from codesync.notifiers.base import NotificationResult
from codesync.notifiers.email import EmailNotifier
from codesync.notifiers.sms import SmsNotifier
from .windows import DEFAULT_WINDOWS, ReminderMatch, ReminderWindow, evaluate_windows

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TickResult:
    """Summary of a single tick."""

    contests_fetched: int = 0
    contests_expired: int = 0
    subscribers: int = 0
    batches_sent: int = 0
    batches_skipped: int = 0
    emails_sent: int = 0
    emails_failed: int = 0
    sms_sent: int = 0
    sms_failed: int = 0
    ledger_cleaned: int = 0
    no_subscribers: bool = False
    dry_run: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class _Batch:
    """Rendered messages for one (contest, kind) fan-out."""

    subject: str
    html: str
    sms_text: str


class ReminderEngine:
    """Decides which reminders are due and sends each batch at most once."""

    def __init__(
        self,
        contests: ContestRepository,
        subscribers: SubscriberRepository,
        ledger: ReminderLedger,
        fetcher: ContestFetcher,
        email_notifier: EmailNotifier,
        sms_notifier: SmsNotifier,
        windows: tuple[ReminderWindow, ...] = DEFAULT_WINDOWS,
        grace_hours: float = 1.0,
        claim_lease_minutes: float = 30.0,
        display_timezone: Optional[str] = None,
        dry_run: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize reminder engine.

        Args:
            contests: Contest cache
            subscribers: Subscriber store
            ledger: Reminder ledger used for deduplication
            fetcher: Contest source aggregator
            email_notifier: Email channel
            sms_notifier: SMS channel
            windows: Reminder windows to evaluate
            grace_hours: Hours after start before a contest and its ledger
                records are cleaned up
            claim_lease_minutes: How long an unsent claim blocks other runs;
                after that the batch is retried by the next tick
            display_timezone: IANA zone used for start times in messages
            dry_run: Log due batches without sending or writing the ledger
            clock: Source of the current time
        """
        self.contests = contests
        self.subscribers = subscribers
        self.ledger = ledger
        self.fetcher = fetcher
        self.email_notifier = email_notifier
        self.sms_notifier = sms_notifier
        self.windows = windows
        self.grace = timedelta(hours=grace_hours)
        self.claim_lease = timedelta(minutes=claim_lease_minutes)
        self.display_timezone = display_timezone
        self.dry_run = dry_run
        self.clock = clock

    def run_tick(self, now: Optional[datetime] = None) -> TickResult:
        """
        Run one reminder check.

        Store errors propagate to the caller; platform and per-recipient
        send failures are logged and absorbed.

        Args:
            now: Evaluation time, defaults to the engine clock

        Returns:
            TickResult summarizing the work done
        """
        now = now or self.clock()
        result = TickResult(dry_run=self.dry_run)
        logger.info("Checking reminders...")

        contests, result.contests_expired = self.refresh_contests(now)
        result.contests_fetched = len(contests)
        result.ledger_cleaned += self.ledger.delete_started_before(now - self.grace)

        subscribers = self.subscribers.list_all()
        result.subscribers = len(subscribers)
        if not subscribers:
            logger.info("No subscribers found. Skipping reminder check.")
            result.no_subscribers = True
            return result
        logger.info(f"Checking reminders for {len(subscribers)} subscribers...")

        for contest in contests:
            for match in evaluate_windows(contest, now, self.windows):
                self._process_match(match, subscribers, now, result)

            if contest.hours_until_start(now) < -self.grace.total_seconds() / 3600:
                result.ledger_cleaned += self.ledger.delete_by_contest(
                    contest.contest_id
                )

        logger.info(
            f"Reminder check done: {result.batches_sent} batches sent, "
            f"{result.batches_skipped} already sent"
        )
        return result

    def refresh_contests(self, now: Optional[datetime] = None) -> tuple[list[Contest], int]:
        """
        Fetch contests and merge them into the cache.

        Returns:
            Tuple of (fetched contests, number of expired contests removed)
        """
        now = now or self.clock()
        contests = self.fetcher.fetch_all()
        expired = self.contests.delete_older_than(now - self.grace)
        self.contests.upsert_many(contests, updated_at=now)
        logger.info(f"Fetched and updated {len(contests)} upcoming contests")
        return contests, expired

    def _process_match(
        self,
        match: ReminderMatch,
        subscribers: list[Subscriber],
        now: datetime,
        result: TickResult,
    ) -> None:
        """
        Claim the ledger key for a match and fan out if this tick won it.

        The claim is a lease: ``sent_at`` is written only after every send
        was attempted, and a claim left unsent past the lease is taken over
        so that a crashed run's batch is still delivered.
        """
        contest = match.contest
        contest_id = contest.contest_id
        lease_cutoff = now - self.claim_lease

        if self.ledger.is_settled(contest_id, match.kind, lease_cutoff):
            logger.debug(f"{match.kind.value} reminder already sent for: {contest.name}")
            result.batches_skipped += 1
            return

        if self.dry_run:
            logger.info(
                f"[dry-run] Would send {match.kind.value} reminder for: "
                f"{contest.name} (Starts in ~{match.display_time})"
            )
            return

        if not self.ledger.insert_if_absent(
            contest_id,
            match.kind,
            contest.to_dict(),
            claimed_at=now,
            lease_cutoff=lease_cutoff,
        ):
            logger.debug(f"{match.kind.value} reminder claimed elsewhere for: {contest.name}")
            result.batches_skipped += 1
            return

        logger.info(
            f"Sending {match.kind.value} reminder for: {contest.name} "
            f"(Starts in ~{match.display_time})"
        )
        self._fan_out(self._render(match), subscribers, result)
        self.ledger.mark_sent(contest_id, match.kind, sent_at=self.clock())
        result.batches_sent += 1

    def _render(self, match: ReminderMatch) -> _Batch:
        contest = match.contest
        tz = self.display_timezone
        if match.kind == ReminderKind.FAR:
            hours = match.rounded_hours
            return _Batch(
                subject=templates.far_reminder_subject(contest),
                html=templates.far_reminder_email(contest, hours, tz),
                sms_text=templates.far_reminder_sms(contest, hours, tz),
            )
        return _Batch(
            subject=templates.near_reminder_subject(contest),
            html=templates.near_reminder_email(contest, match.display_time),
            sms_text=templates.near_reminder_sms(contest, match.display_time, tz),
        )

    def _fan_out(
        self, batch: _Batch, subscribers: list[Subscriber], result: TickResult
    ) -> None:
        """Deliver a batch to every subscriber; failures never stop the batch."""
        for subscriber in subscribers:
            if subscriber.wants_email:
                sent = self._deliver(
                    "email",
                    subscriber.email,
                    lambda: self.email_notifier.send(
                        subscriber.email, batch.subject, batch.html
                    ),
                )
                if sent:
                    result.emails_sent += 1
                else:
                    result.emails_failed += 1

            if subscriber.wants_sms:
                sent = self._deliver(
                    "sms",
                    subscriber.phone,
                    lambda: self.sms_notifier.send(subscriber.phone, batch.sms_text),
                )
                if sent:
                    result.sms_sent += 1
                else:
                    result.sms_failed += 1

    @staticmethod
    def _deliver(
        channel: str, recipient: str, send: Callable[[], NotificationResult]
    ) -> bool:
        try:
            outcome = send()
        except Exception as e:
            logger.error(f"Unexpected {channel} error for {recipient}: {e}")
            return False
        if not outcome.success:
            logger.warning(f"{channel} to {recipient} failed: {outcome.error}")
        return outcome.success
