"""
Main application entry point.
"""

import logging
import sqlite3
import sys
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from dotenv import load_dotenv

from codesync.config import AppConfig, RemindersConfig
from codesync.data.fetcher import ContestFetcher
from codesync.database.connection import Database
from codesync.database.models import ReminderKind
from codesync.database.repository import (
    ContestRepository,
    ReminderLedger,
    SubscriberRepository,
)
from codesync.logging_config import configure_logging
from codesync.notifiers.email import EmailNotifier
from codesync.notifiers.sms import SmsNotifier
from codesync.reminders.engine import ReminderEngine, TickResult
from codesync.reminders.windows import ReminderWindow
from codesync.subscriptions import SubscriptionService

logger = logging.getLogger(__name__)


def build_windows(reminders: RemindersConfig) -> tuple[ReminderWindow, ...]:
    """Build reminder windows from configuration."""
    return (
        ReminderWindow(
            ReminderKind.FAR,
            reminders.far_window.lower_hours,
            reminders.far_window.upper_hours,
        ),
        ReminderWindow(
            ReminderKind.NEAR,
            reminders.near_window.lower_hours,
            reminders.near_window.upper_hours,
        ),
    )


class CodeSyncApp:
    """Main CodeSync application; owns every long-lived service."""

    def __init__(
        self,
        db: Database,
        config: Optional[AppConfig] = None,
        fetcher: Optional[ContestFetcher] = None,
        email_notifier: Optional[EmailNotifier] = None,
        sms_notifier: Optional[SmsNotifier] = None,
        dry_run: bool = False,
    ):
        """
        Initialize CodeSync app.

        Args:
            db: Database instance (already initialized)
            config: Application configuration, defaults used when omitted
            fetcher: Contest fetcher override
            email_notifier: Email channel override
            sms_notifier: SMS channel override
            dry_run: Evaluate reminders without sending anything
        """
        self.db = db
        self.config = config or AppConfig()

        # Initialize repositories
        self.contest_repo = ContestRepository(db)
        self.subscriber_repo = SubscriberRepository(db)
        self.ledger = ReminderLedger(db)

        # Initialize services
        self.fetcher = fetcher or ContestFetcher(
            platforms=self.config.sources.platforms,
            timeout=self.config.sources.timeout_seconds,
        )
        email = self.config.email
        self.email_notifier = email_notifier or EmailNotifier(
            smtp_host=email.smtp_host,
            smtp_port=email.smtp_port,
            smtp_user=email.user,
            smtp_password=email.password,
            from_name=email.from_name,
            use_ssl=email.use_ssl,
        )
        sms = self.config.sms
        self.sms_notifier = sms_notifier or SmsNotifier(
            account_sid=sms.account_sid,
            auth_token=sms.auth_token,
            from_number=sms.from_number,
        )
        self.engine = ReminderEngine(
            contests=self.contest_repo,
            subscribers=self.subscriber_repo,
            ledger=self.ledger,
            fetcher=self.fetcher,
            email_notifier=self.email_notifier,
            sms_notifier=self.sms_notifier,
            windows=build_windows(self.config.reminders),
            grace_hours=self.config.reminders.cleanup_grace_hours,
            claim_lease_minutes=self.config.reminders.claim_lease_minutes,
            display_timezone=self.config.schedule.timezone,
            dry_run=dry_run,
        )
        self.subscriptions = SubscriptionService(
            self.subscriber_repo, self.email_notifier, self.sms_notifier
        )

        self._log_channel_status()

    def _log_channel_status(self) -> None:
        if self.email_notifier.is_configured:
            logger.info("Email configured")
        else:
            logger.warning("Email not configured. SMTP user or password missing.")
        if self.sms_notifier.is_configured:
            logger.info(f"Twilio configured: {self.sms_notifier.from_number}")
        else:
            logger.warning("Twilio not configured. SMS will not be sent.")

    def run_check(self) -> TickResult:
        """Run one reminder tick."""
        return self.engine.run_tick()

    def scheduled_check(self) -> None:
        """Scheduler job wrapper; a failed tick is retried on the next run."""
        try:
            self.run_check()
        except Exception:
            logger.exception("Scheduled reminder check failed")

    def start_scheduler(self) -> BackgroundScheduler:
        """Start the interval scheduler that runs reminder ticks."""
        hours = self.config.schedule.interval_hours
        scheduler = BackgroundScheduler(timezone=self.config.schedule.timezone)
        scheduler.add_job(
            self.scheduled_check,
            trigger=IntervalTrigger(hours=hours),
            id="reminder_check",
            name="Contest reminder check",
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        logger.info(f"Scheduled reminder check every {hours} hours")
        return scheduler


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="CodeSync Contest Reminder Service")
    parser.add_argument(
        "--config", default="config.yaml", help="Path to config file"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument(
        "--dry-run", action="store_true", help="Run without sending notifications"
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="serve",
        choices=["serve", "tick"],
        help="serve: HTTP API (and scheduler); tick: run one reminder check",
    )

    args = parser.parse_args()

    load_dotenv()

    # Load config
    from codesync.config import load_config

    config = load_config(args.config)

    # Setup logging
    log_level = "DEBUG" if args.debug else config.advanced.log_level
    configure_logging(log_level, config.advanced.log_file)

    # Initialize database
    try:
        db = Database(config.database.path)
        db.initialize()
    except sqlite3.Error as e:
        logger.critical(f"Could not open database {config.database.path}: {e}")
        sys.exit(1)
    logger.info(f"Connected to database {config.database.path}")

    app = CodeSyncApp(db=db, config=config, dry_run=args.dry_run)
    if args.dry_run:
        logger.info("Dry run mode - no notifications will be sent")

    if args.command == "tick":
        try:
            result = app.run_check()
        except sqlite3.Error as e:
            logger.error(f"Reminder check failed: {e}")
            sys.exit(1)
        finally:
            db.close()
        logger.info(f"Tick summary: {result.to_dict()}")
        return

    from codesync.web.app import create_app

    if config.schedule.run_on_startup:
        logger.info("Running initial contest fetch on startup...")
        app.scheduled_check()

    scheduler = app.start_scheduler() if config.schedule.enabled else None
    web_app = create_app(app, cron_secret=config.server.cron_secret)

    logger.info(f"Server running on port {config.server.port}")
    try:
        web_app.run(host=config.server.host, port=config.server.port, threaded=True)
    finally:
        if scheduler:
            scheduler.shutdown()
        db.close()


if __name__ == "__main__":
    main()
