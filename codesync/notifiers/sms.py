"""
Twilio SMS notifier.
"""

import logging
from typing import Optional

import requests

from .base import Notifier, NotificationResult

logger = logging.getLogger(__name__)


class SmsNotifier(Notifier):
    """Sends text messages through the Twilio Messages REST API."""

    channel = "sms"
    API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        timeout: float = 10.0,
    ):
        """
        Initialize SMS notifier.

        Args:
            account_sid: Twilio account SID
            auth_token: Twilio auth token
            from_number: Sending phone number in E.164 format
            timeout: Request timeout in seconds
        """
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def send(self, to: str, text: str) -> NotificationResult:
        """Send a text message to a single phone number."""
        if not self.is_configured:
            logger.warning(f"SMS not configured, skipping send to {to}")
            return self._not_configured()

        logger.info(f"Sending SMS to {to}")
        try:
            response = requests.post(
                self.API_URL.format(sid=self.account_sid),
                data={"To": to, "From": self.from_number, "Body": text},
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
            )

            if response.ok:
                sid = response.json().get("sid")
                logger.info(f"SMS sent to {to} (sid: {sid})")
                return NotificationResult(success=True, channel=self.channel)

            logger.error(f"SMS to {to} failed: HTTP {response.status_code}")
            return self._failure(f"HTTP {response.status_code}: {response.text}")

        except requests.exceptions.ConnectionError as e:
            logger.error(f"SMS to {to} failed: {e}")
            return self._failure(f"Connection error: {str(e)}")
        except Exception as e:
            logger.error(f"SMS to {to} failed: {e}")
            return self._failure(str(e))
