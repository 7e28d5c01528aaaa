"""
Booking confirmation emails and a retrying outbox for them.
"""

import html
import logging
import threading
from collections import deque
from typing import Deque, List, Optional, Protocol, Sequence, Tuple

from ..adapters.notifier import Notifier
from ..domain.exceptions import NotificationError
from ..domain.models import AppointmentDetails, EmailMessage

logger = logging.getLogger(__name__)


CONFIRMATION_TEMPLATE = """\
<div style="font-family: sans-serif; color: #333; padding: 20px; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #4f46e5; text-align: center;">{heading}</h2>
  <p><strong>{patient}</strong>,</p>
  <div style="background-color: #f3f4f6; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <p style="margin: 8px 0;"><strong>&#128197;</strong> {date}</p>
    <p style="margin: 8px 0;"><strong>&#9200;</strong> {time}</p>
    <p style="margin: 8px 0;"><strong>&#129504;</strong> {service}</p>
  </div>
  <p style="text-align: center; font-size: 12px; color: #999;">{provider}</p>
</div>
"""


def render_confirmation(
    details: AppointmentDetails,
    time_zone: str,
    locale: str,
    subject: str,
    provider_name: str,
) -> Optional[EmailMessage]:
    """
    Render the confirmation email for a booked appointment.

    Date and time are shown in the provider's timezone and locale.

    Returns:
        The message, or None when the patient has no email address
    """
    patient = details.patient
    start = details.appointment.start_time
    if patient is None or not patient.email or start is None:
        return None

    local_start = start.in_timezone(time_zone)
    service_name = details.service.name if details.service else ""

    body = CONFIRMATION_TEMPLATE.format(
        heading=html.escape(subject),
        patient=html.escape(patient.full_name),
        date=html.escape(local_start.format("dddd, LL", locale=locale)),
        time=html.escape(local_start.format("hh:mm A", locale=locale)),
        service=html.escape(service_name),
        provider=html.escape(provider_name),
    )
    return EmailMessage(recipient=patient.email, subject=subject, html=body)


class OutboxStore(Protocol):
    """Persistence for undelivered notifications."""

    def load_outbox(self) -> Tuple[List[EmailMessage], List[EmailMessage]]:
        """Return the (pending, dead letter) messages."""

    def save_outbox(
        self,
        pending: Sequence[EmailMessage],
        dead_letters: Sequence[EmailMessage],
    ) -> None:
        """Replace the stored messages."""


class NotificationOutbox:
    """
    Delivers notifications independently of the operation that produced them.

    A failed delivery is logged and queued; ``flush`` retries queued messages
    until each has used ``max_attempts``. With a store, the queue survives
    the process so a later run can flush it. Nothing here ever raises to the
    caller.
    """

    def __init__(
        self,
        notifier: Notifier,
        max_attempts: int = 3,
        store: Optional[OutboxStore] = None,
    ):
        self._notifier = notifier
        self.max_attempts = max_attempts
        self._store = store
        self._pending: Deque[EmailMessage] = deque()
        self.dead_letters: List[EmailMessage] = []
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()

        if store is not None:
            pending, dead_letters = store.load_outbox()
            self._pending.extend(pending)
            self.dead_letters.extend(dead_letters)
            if pending:
                logger.info("%d undelivered notifications waiting in the outbox", len(pending))

    @property
    def pending(self) -> List[EmailMessage]:
        with self._lock:
            return list(self._pending)

    def submit(self, message: EmailMessage) -> bool:
        """Try to deliver now; queue for retry on failure. Returns delivery success."""
        delivered = self._deliver(message)
        if not delivered:
            self._settle(message, delivered, queued=False)
        return delivered

    def flush(self) -> int:
        """Retry every queued message once. Returns how many got delivered."""
        with self._flush_lock:
            batch = self.pending
            delivered = 0
            for message in batch:
                ok = self._deliver(message)
                self._settle(message, ok, queued=True)
                delivered += ok
            return delivered

    def _deliver(self, message: EmailMessage) -> bool:
        message.attempts += 1
        try:
            self._notifier.send(message)
            return True
        except NotificationError as exc:
            message.last_error = str(exc)
            return False

    def _settle(self, message: EmailMessage, delivered: bool, queued: bool) -> None:
        with self._lock:
            if queued:
                self._pending.remove(message)

            if not delivered:
                if message.attempts < self.max_attempts:
                    logger.warning(
                        "Notification to %s failed (attempt %d/%d), queued for retry: %s",
                        message.recipient,
                        message.attempts,
                        self.max_attempts,
                        message.last_error,
                    )
                    self._pending.append(message)
                else:
                    logger.error(
                        "Notification to %s failed after %d attempts, giving up: %s",
                        message.recipient,
                        message.attempts,
                        message.last_error,
                    )
                    self.dead_letters.append(message)

            if self._store is not None:
                try:
                    self._store.save_outbox(list(self._pending), self.dead_letters)
                except OSError as exc:
                    logger.error("Could not persist the notification outbox: %s", exc)
