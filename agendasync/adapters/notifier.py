"""
Outbound email notifications.
"""

import logging
from typing import List, Optional, Protocol

import requests

from ..config import NotificationConfig
from ..domain.exceptions import NotificationError
from ..domain.models import EmailMessage

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Delivers one email; raises ``NotificationError`` on failure."""

    def send(self, message: EmailMessage) -> None:
        """Send the message."""


class ResendNotifier:
    """Sends email through the Resend HTTP API."""

    RESEND_API_URL = "https://api.resend.com/emails"

    def __init__(
        self,
        api_key: str,
        sender: str,
        api_url: str = RESEND_API_URL,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url
        self.timeout = timeout
        self._session = session or requests.Session()

    def send(self, message: EmailMessage) -> None:
        """
        Deliver one message.

        Raises:
            NotificationError: If the API cannot be reached or rejects the message
        """
        try:
            response = self._session.post(
                self.api_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "from": self.sender,
                    "to": [message.recipient],
                    "subject": message.subject,
                    "html": message.html,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            raise NotificationError(f"Failed to send email to {message.recipient}: {exc}") from exc

        logger.info("Sent notification to %s", message.recipient)


class LogNotifier:
    """Notifier that only logs; used when email delivery is not configured."""

    def __init__(self):
        self.sent: List[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        logger.info("Email delivery disabled; would send '%s' to %s", message.subject, message.recipient)
        self.sent.append(message)


def build_notifier(
    config: NotificationConfig,
    session: Optional[requests.Session] = None,
) -> Notifier:
    """Pick the Resend notifier when enabled and keyed, else the logging one."""
    api_key = config.resolve_api_key()
    if not config.enabled or not api_key:
        if config.enabled:
            logger.warning("$%s is not set; notifications will only be logged", config.api_key_env)
        return LogNotifier()

    return ResendNotifier(
        api_key=api_key,
        sender=config.sender,
        api_url=config.api_url,
        session=session,
        timeout=config.request_timeout_seconds,
    )
