"""
CLI commands for CodeSync.
"""

import argparse
from datetime import datetime, timedelta, timezone
from typing import Optional

from dotenv import load_dotenv

from codesync.data.fetcher import SOURCES, ContestFetcher
from codesync.database.connection import Database
from codesync.database.models import Contest, Subscriber
from codesync.database.repository import ContestRepository, SubscriberRepository
from codesync.notifiers.email import EmailNotifier
from codesync.notifiers.sms import SmsNotifier
from codesync.subscriptions import SubscriptionError, SubscriptionService


def add_subscriber(
    db: Database,
    email: str,
    phone: Optional[str] = None,
    channels: Optional[list[str]] = None,
) -> Subscriber:
    """Add or update a subscriber without sending welcome messages."""
    service = SubscriptionService(
        SubscriberRepository(db), EmailNotifier(), SmsNotifier()
    )
    outcome = service.subscribe(
        email, phone=phone, preferences=channels, notify=False
    )
    return outcome.subscriber


def remove_subscriber(db: Database, email: str) -> bool:
    """Remove a subscriber. Returns False if not found."""
    return SubscriberRepository(db).delete(email)


def refresh_contests(db: Database, platforms: Optional[list[str]] = None) -> dict:
    """Fetch contests from platforms and merge them into the cache."""
    unknown = [p for p in platforms or [] if p not in SOURCES]
    if unknown:
        raise ValueError(f"Unknown platforms: {', '.join(unknown)}")

    contests = ContestFetcher(platforms=platforms).fetch_all()
    repo = ContestRepository(db)
    expired = repo.delete_older_than(datetime.now(timezone.utc) - timedelta(hours=1))
    repo.upsert_many(contests)
    return {"fetched": len(contests), "expired": expired}


def list_contests(db: Database, platform: Optional[str] = None) -> list[Contest]:
    """List cached contests with optional platform filtering."""
    contests = ContestRepository(db).list_all()
    if platform:
        contests = [c for c in contests if c.platform.lower() == platform.lower()]
    return contests


def main():
    """CLI entry point."""
    load_dotenv()

    parser = argparse.ArgumentParser(description="CodeSync CLI")
    parser.add_argument("--db", default="data/codesync.db", help="Database path")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # Subscriber commands
    sub_parser = subparsers.add_parser("subscribers", help="Subscriber management")
    sub_subparsers = sub_parser.add_subparsers(dest="action")

    add_parser = sub_subparsers.add_parser("add", help="Add or update subscriber")
    add_parser.add_argument("--email", required=True, help="Subscriber email")
    add_parser.add_argument("--phone", help="Phone number for SMS")
    add_parser.add_argument(
        "--channels", help="Comma-separated channels (email,sms)"
    )

    remove_parser = sub_subparsers.add_parser("remove", help="Remove subscriber")
    remove_parser.add_argument("--email", required=True, help="Subscriber email")

    sub_subparsers.add_parser("list", help="List subscribers")

    # Contest commands
    contest_parser = subparsers.add_parser("contests", help="Contest cache")
    contest_subparsers = contest_parser.add_subparsers(dest="action")

    refresh_parser = contest_subparsers.add_parser("refresh", help="Fetch contests")
    refresh_parser.add_argument(
        "--platforms", help=f"Comma-separated platforms ({','.join(SOURCES)})"
    )

    list_parser = contest_subparsers.add_parser("list", help="List contests")
    list_parser.add_argument("--platform", help="Platform filter")

    args = parser.parse_args()

    # Initialize database
    db = Database(args.db)
    db.initialize()

    # Handle commands
    if args.command == "subscribers":
        if args.action == "add":
            channels = (
                [c.strip() for c in args.channels.split(",")] if args.channels else None
            )
            try:
                subscriber = add_subscriber(db, args.email, args.phone, channels)
            except SubscriptionError as e:
                parser.error(str(e))
            names = ", ".join(sorted(c.value for c in subscriber.channels))
            print(f"Saved subscriber {subscriber.email} ({names})")
        elif args.action == "remove":
            if remove_subscriber(db, args.email):
                print(f"Removed {args.email}")
            else:
                print(f"Not found: {args.email}")
        elif args.action == "list":
            for s in SubscriberRepository(db).list_all():
                names = ", ".join(sorted(c.value for c in s.channels))
                print(f"{s.email}: {names}, phone: {s.phone or '-'}")

    elif args.command == "contests":
        if args.action == "refresh":
            platforms = (
                [p.strip().lower() for p in args.platforms.split(",")]
                if args.platforms
                else None
            )
            try:
                result = refresh_contests(db, platforms)
            except ValueError as e:
                parser.error(str(e))
            print(f"Fetched {result['fetched']} contests, expired {result['expired']}")
        elif args.action == "list":
            contests = list_contests(db, platform=args.platform)
            for c in contests[:50]:  # Limit output
                print(f"{c.start_time:%Y-%m-%d %H:%M} UTC  [{c.platform}] {c.name}")
            if len(contests) > 50:
                print(f"... and {len(contests) - 50} more")

    db.close()


if __name__ == "__main__":
    main()
