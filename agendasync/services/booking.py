"""
Booking flow: requesting appointments and applying operator actions.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, time
from enum import Enum
from typing import Callable, Dict, Optional

import pendulum
from pendulum.tz.timezone import FixedTimezone

from ..adapters.storage import AgendaStore
from ..domain.exceptions import (
    AgendaError,
    InvalidTransitionError,
    SlotUnavailableError,
)
from ..domain.models import Appointment, AppointmentStatus
from ..domain.slot_generator import format_hour
from .availability import AvailabilityResolver
from .synchronizer import BookingSynchronizer

logger = logging.getLogger(__name__)


class BookingAction(str, Enum):
    """Operator decisions on a pending appointment."""
    CONFIRM = "confirm"
    REJECT = "reject"


@dataclass(frozen=True)
class BookingRequest:
    """What a patient submits to book a slot."""
    service_id: str
    day: date
    start: time
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class ActionOutcome:
    """
    Result of an operator action.

    ``sync_error`` is set when the appointment was confirmed but could not be
    mirrored to the calendar; the confirmation itself still stands.
    """
    action: BookingAction
    appointment: Appointment
    external_event_id: Optional[str] = None
    sync_error: Optional[AgendaError] = None

    @property
    def sync_failed(self) -> bool:
        return self.sync_error is not None


class BookingDesk:
    """Front desk for the booking lifecycle: pending, then confirmed or rejected."""

    def __init__(
        self,
        store: AgendaStore,
        resolver: AvailabilityResolver,
        synchronizer: BookingSynchronizer,
        utc_offset: FixedTimezone,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._synchronizer = synchronizer
        self._timezone = utc_offset
        self._handlers: Dict[BookingAction, Callable[[str], ActionOutcome]] = {
            BookingAction.CONFIRM: self._confirm,
            BookingAction.REJECT: self._reject,
        }

    def request_booking(self, request: BookingRequest) -> Appointment:
        """
        Create a pending appointment for a free slot.

        Raises:
            NotFoundError: If the service does not exist
            SlotUnavailableError: If the service is inactive or the slot is not
                offered or already busy
            SlotConflictError: If storage finds another active appointment at
                the same start
        """
        service = self._store.get_service(request.service_id)
        if not service.is_active:
            raise SlotUnavailableError(f"Service '{service.name}' is not offered for booking")

        if request.start.minute or not self._resolver.is_available(request.day, request.start.hour):
            raise SlotUnavailableError(
                f"Slot {request.day} {request.start.strftime('%H:%M')} is not available"
            )

        patient = self._store.get_or_create_patient(
            request.full_name,
            request.email,
            request.phone,
        )

        local_start = pendulum.datetime(
            request.day.year,
            request.day.month,
            request.day.day,
            request.start.hour,
            tz=self._timezone,
        )
        start = local_start.in_timezone("UTC")
        appointment = Appointment(
            id=uuid.uuid4().hex,
            patient_id=patient.id,
            service_id=service.id,
            start_time=start,
            end_time=start.add(minutes=service.duration_min),
            status=AppointmentStatus.PENDING,
            created_at=pendulum.now("UTC"),
        )

        appointment = self._store.insert_appointment(appointment)
        logger.info(
            "Booked %s on %s %s for patient %s (appointment %s)",
            service.name,
            request.day,
            format_hour(request.start.hour),
            patient.id,
            appointment.id,
        )
        return appointment

    def apply(self, action: BookingAction, appointment_id: str) -> ActionOutcome:
        """
        Apply an operator action to a pending appointment.

        Raises:
            NotFoundError: If the appointment does not exist
            InvalidTransitionError: If the appointment is no longer pending
        """
        handler = self._handlers[BookingAction(action)]
        return handler(appointment_id)

    def retry_sync(self, appointment_id: str) -> str:
        """
        Re-run calendar synchronization for a confirmed appointment.

        Safe to repeat: an appointment that already has an event id is not
        synchronized again.
        """
        details = self._store.get_appointment_details(appointment_id)
        if details.appointment.status is not AppointmentStatus.CONFIRMED:
            raise InvalidTransitionError(
                f"Appointment {appointment_id} is {details.appointment.status.value}, "
                "only confirmed appointments are synchronized"
            )
        return self._synchronizer.synchronize(details)

    def _confirm(self, appointment_id: str) -> ActionOutcome:
        self._transition(appointment_id, AppointmentStatus.CONFIRMED)
        details = self._store.get_appointment_details(appointment_id)

        try:
            event_id = self._synchronizer.synchronize(details)
        except AgendaError as exc:
            logger.error(
                "Appointment %s confirmed but calendar synchronization failed: %s",
                appointment_id,
                exc,
            )
            return ActionOutcome(
                action=BookingAction.CONFIRM,
                appointment=details.appointment,
                sync_error=exc,
            )

        return ActionOutcome(
            action=BookingAction.CONFIRM,
            appointment=details.appointment,
            external_event_id=event_id,
        )

    def _reject(self, appointment_id: str) -> ActionOutcome:
        appointment = self._transition(appointment_id, AppointmentStatus.REJECTED)
        return ActionOutcome(action=BookingAction.REJECT, appointment=appointment)

    def _transition(self, appointment_id: str, status: AppointmentStatus) -> Appointment:
        appointment = self._store.transition(appointment_id, AppointmentStatus.PENDING, status)
        logger.info("Appointment %s marked %s", appointment_id, status.value)
        return appointment
