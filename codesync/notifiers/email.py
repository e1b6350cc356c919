"""
Email SMTP notifier.
"""

import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import formataddr
from typing import Optional

from .base import Notifier, NotificationResult

logger = logging.getLogger(__name__)


class EmailNotifier(Notifier):
    """Sends HTML emails via SMTP."""

    channel = "email"

    def __init__(
        self,
        smtp_host: str = "smtp.gmail.com",
        smtp_port: int = 465,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_name: str = "CodeSync",
        use_ssl: bool = True,
        timeout: float = 30.0,
    ):
        """
        Initialize email notifier.

        Args:
            smtp_host: SMTP server hostname
            smtp_port: SMTP server port
            smtp_user: SMTP username, also used as the sender address
            smtp_password: SMTP password
            from_name: Display name for the sender
            use_ssl: Implicit TLS (port 465) instead of STARTTLS
            timeout: Connection timeout in seconds
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_name = from_name
        self.use_ssl = use_ssl
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)

    def send(self, to: str, subject: str, html_body: str) -> NotificationResult:
        """Send an HTML email to a single recipient."""
        if not self.is_configured:
            logger.warning(f"Email not configured, skipping send to {to}")
            return self._not_configured()

        try:
            message = self._create_message(to, subject, html_body)

            with self._connect() as server:
                if not self.use_ssl:
                    server.starttls()
                server.login(self.smtp_user, self.smtp_password)
                server.send_message(message)

            logger.info(f"Email sent to {to}")
            return NotificationResult(success=True, channel=self.channel)

        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"Email to {to} failed: authentication error")
            return self._failure(f"Authentication failed: {str(e)}")
        except Exception as e:
            logger.error(f"Email to {to} failed: {e}")
            return self._failure(f"SMTP error: {str(e)}")

    def _connect(self) -> smtplib.SMTP:
        if self.use_ssl:
            return smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, timeout=self.timeout)
        return smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout)

    def _create_message(self, to: str, subject: str, html_body: str) -> MIMEMultipart:
        """Create email message."""
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = formataddr((self.from_name, self.smtp_user))
        message["To"] = to
        message.attach(MIMEText(html_body, "html"))
        return message
