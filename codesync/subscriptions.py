"""
Subscribe and unsubscribe handling, including welcome notifications.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from codesync.database.models import Channel, Subscriber
from codesync.database.repository import SubscriberRepository
from codesync.notifiers import templates
from codesync.notifiers.base import NotificationResult
from codesync.notifiers.email import EmailNotifier
from codesync.notifiers.sms import SmsNotifier

logger = logging.getLogger(__name__)


class SubscriptionError(ValueError):
    """Raised when a subscription request is invalid."""

    pass


@dataclass
class SubscribeOutcome:
    """Result of a subscribe call."""

    subscriber: Subscriber
    created: bool
    welcome_email: Optional[NotificationResult] = None
    welcome_sms: Optional[NotificationResult] = None

    @property
    def message(self) -> str:
        if self.created:
            return "Subscribed successfully!"
        return "You are already subscribed. Your preferences have been updated."


def parse_channels(preferences: Optional[Iterable[str]]) -> Optional[frozenset[Channel]]:
    """
    Convert raw preference strings to channels.

    Returns:
        Channel set, or None when no preferences were given

    Raises:
        SubscriptionError: If a preference is not a known channel
    """
    if preferences is None:
        return None
    if isinstance(preferences, str):
        preferences = [preferences]
    if not isinstance(preferences, (list, tuple, set, frozenset)):
        raise SubscriptionError("Preferences must be a list of channels")
    channels = set()
    for value in preferences:
        try:
            channels.add(Channel(str(value).strip().lower()))
        except ValueError:
            raise SubscriptionError(f"Unknown notification channel: {value}")
    return frozenset(channels)


def normalize_email(email: Optional[str]) -> str:
    """Validate and normalize an email address."""
    if email is not None and not isinstance(email, str):
        raise SubscriptionError("Email must be a string")
    email = (email or "").strip()
    if not email:
        raise SubscriptionError("Email is required")
    if "@" not in email:
        raise SubscriptionError(f"Invalid email address: {email}")
    return email


class SubscriptionService:
    """Manages subscribers and their welcome messages."""

    def __init__(
        self,
        subscribers: SubscriberRepository,
        email_notifier: EmailNotifier,
        sms_notifier: SmsNotifier,
    ):
        self.subscribers = subscribers
        self.email_notifier = email_notifier
        self.sms_notifier = sms_notifier

    def subscribe(
        self,
        email: Optional[str],
        phone: Optional[str] = None,
        preferences: Optional[Iterable[str]] = None,
        notify: bool = True,
    ) -> SubscribeOutcome:
        """
        Create a subscriber or update an existing one.

        Omitted phone or preferences keep the stored values. New subscribers
        default to the email channel.

        Args:
            email: Subscriber email address
            phone: Phone number for SMS
            preferences: Channel names, e.g. ["email", "sms"]
            notify: Send the welcome email and SMS

        Raises:
            SubscriptionError: On missing or malformed input
        """
        email = normalize_email(email)
        channels = parse_channels(preferences)
        if phone is not None and not isinstance(phone, str):
            raise SubscriptionError("Phone must be a string")
        phone = (phone or "").strip() or None

        existing = self.subscribers.get(email)
        now = datetime.now(timezone.utc)

        if existing:
            subscriber = Subscriber(
                email=email,
                phone=phone or existing.phone,
                channels=channels if channels is not None else existing.channels,
                subscribed_at=existing.subscribed_at,
                updated_at=now,
            )
        else:
            subscriber = Subscriber(
                email=email,
                phone=phone,
                channels=channels if channels is not None else frozenset({Channel.EMAIL}),
                subscribed_at=now,
            )

        subscriber = self.subscribers.upsert(subscriber)
        outcome = SubscribeOutcome(subscriber=subscriber, created=existing is None)
        if existing:
            logger.info(f"Existing subscriber updated: {email}")
        else:
            logger.info(f"New subscriber saved: {email}")

        if not notify:
            return outcome

        if subscriber.wants_email:
            if outcome.created:
                outcome.welcome_email = self.email_notifier.send(
                    email, templates.WELCOME_SUBJECT, templates.welcome_email()
                )
            else:
                outcome.welcome_email = self.email_notifier.send(
                    email,
                    templates.ALREADY_SUBSCRIBED_SUBJECT,
                    templates.already_subscribed_email(),
                )

        had_sms = existing is not None and Channel.SMS in existing.channels
        if subscriber.wants_sms and not had_sms:
            logger.info(f"Sending welcome SMS to {subscriber.phone}")
            outcome.welcome_sms = self.sms_notifier.send(
                subscriber.phone, templates.WELCOME_SMS
            )
        elif subscriber.wants_sms:
            logger.info("SMS for existing subscriber not resent")
        elif Channel.SMS in subscriber.channels:
            logger.warning(f"SMS selected but no phone number on file for {email}")

        return outcome

    def unsubscribe(self, email: Optional[str]) -> bool:
        """
        Remove a subscriber.

        Returns:
            False if the email was not subscribed

        Raises:
            SubscriptionError: If email is missing
        """
        email = normalize_email(email)
        if not self.subscribers.delete(email):
            logger.warning(f"Unsubscribe attempt for non-existent email: {email}")
            return False
        logger.info(f"Unsubscribed: {email}")
        return True

    def list_emails(self) -> list[str]:
        return [s.email for s in self.subscribers.list_all()]
