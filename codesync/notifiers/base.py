"""
Base notifier classes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class NotificationResult:
    """Result of a notification attempt."""

    success: bool
    channel: str
    error: Optional[str] = None


class Notifier(ABC):
    """
    Abstract base class for a delivery channel.

    Subclasses implement ``send`` with a channel-specific signature. ``send``
    never raises; failures, including missing credentials, are reported in
    the returned NotificationResult.
    """

    channel: str = ""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials for this channel are present."""
        pass

    def _failure(self, error: str) -> NotificationResult:
        return NotificationResult(success=False, channel=self.channel, error=error)

    def _not_configured(self) -> NotificationResult:
        return self._failure(f"{self.channel} not configured")
