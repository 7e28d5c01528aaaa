"""
Mirrors confirmed appointments into the external calendar.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from ..adapters.storage import AgendaStore
from ..config import AppConfig
from ..domain.exceptions import IncompleteDataError, NotificationError
from ..domain.models import AppointmentDetails, EventDraft
from .notifications import NotificationOutbox, render_confirmation

logger = logging.getLogger(__name__)


class CalendarWriter(Protocol):
    """Protocol describing the calendar write access needed here."""

    def create_event(self, calendar_id: str, draft: EventDraft) -> str:
        """Create the event and return its id."""


class BookingSynchronizer:
    """
    Creates the calendar event for a confirmed appointment, records its id,
    then hands a confirmation email to the outbox.

    The calendar write and the notification are separate steps: a failed
    email never undoes or fails the synchronization.
    """

    def __init__(
        self,
        calendar_client: CalendarWriter,
        store: AgendaStore,
        outbox: NotificationOutbox,
        config: AppConfig,
        calendar_id: Optional[str] = None,
    ) -> None:
        self._calendar_client = calendar_client
        self._calendar_id = calendar_id
        self._store = store
        self._outbox = outbox
        self._config = config

    def synchronize(self, details: AppointmentDetails) -> str:
        """
        Synchronize one appointment.

        Returns:
            The external event id (the existing one if already synchronized)

        Raises:
            IncompleteDataError: If start/end time or patient data is missing;
                raised before any network call
            ConfigurationError: If the calendar id or credentials are missing
            AuthExchangeError: If no write token could be obtained
            UpstreamWriteError: If the event could not be created
        """
        appointment = details.appointment

        if appointment.external_event_id:
            logger.info(
                "Appointment %s already synchronized as %s, skipping",
                appointment.id,
                appointment.external_event_id,
            )
            return appointment.external_event_id

        self._validate(details)

        calendar_id = self._calendar_id or self._config.google.require_calendar_id()
        draft = self.build_draft(details)
        event_id = self._calendar_client.create_event(calendar_id, draft)

        try:
            self._store.set_external_event_id(appointment.id, event_id)
        except Exception:
            logger.error(
                "Event %s was created for appointment %s but its id could not be stored",
                event_id,
                appointment.id,
            )
            raise
        appointment.external_event_id = event_id

        self._notify(details)
        return event_id

    def build_draft(self, details: AppointmentDetails) -> EventDraft:
        """Build the calendar event for an appointment."""
        booking = self._config.booking
        patient = details.patient
        service_name = (
            details.service.name if details.service else booking.default_service_label
        )

        description = (
            f"Patient: {patient.full_name}\n"
            f"Phone: {patient.phone or '-'}\n"
            f"Email: {patient.email or '-'}\n\n"
            f"Booked via {booking.booked_via}."
        )

        # Instants stay in UTC; the calendar renders them in time_zone
        return EventDraft(
            summary=f"{booking.event_prefix}: {service_name} - {patient.full_name}",
            description=description,
            start=details.appointment.start_time,
            end=details.appointment.end_time,
            time_zone=self._config.provider.timezone,
        )

    @staticmethod
    def _validate(details: AppointmentDetails) -> None:
        appointment = details.appointment
        missing = []
        if appointment.start_time is None:
            missing.append("start_time")
        if appointment.end_time is None:
            missing.append("end_time")
        if details.patient is None or not details.patient.full_name:
            missing.append("patient")
        if missing:
            raise IncompleteDataError(
                f"Appointment {appointment.id} is missing {', '.join(missing)}"
            )

    def _notify(self, details: AppointmentDetails) -> None:
        """Hand the confirmation to the outbox. Never raises."""
        provider = self._config.provider
        try:
            message = render_confirmation(
                details,
                time_zone=provider.timezone,
                locale=provider.locale,
                subject=self._config.notifications.subject,
                provider_name=provider.name,
            )
        except Exception as exc:
            logger.error(
                "Appointment %s is synchronized but its notification failed: %s",
                details.appointment.id,
                NotificationError(f"Could not render confirmation: {exc}"),
            )
            return

        if message is None:
            logger.info("Patient of appointment %s has no email, not notifying", details.appointment.id)
            return

        self._outbox.submit(message)
