"""
Storage for shifts, services, patients and appointments.

The engine only depends on the ``AgendaStore`` protocol; the in-memory and
JSON-file implementations here back the CLI and the tests.
"""

import json
import logging
import threading
import uuid
from dataclasses import replace
from datetime import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import pendulum
from pendulum import DateTime

from ..domain.exceptions import InvalidTransitionError, NotFoundError, SlotConflictError
from ..domain.models import (
    Appointment,
    AppointmentDetails,
    AppointmentStatus,
    EmailMessage,
    Patient,
    Service,
    WorkShift,
)

logger = logging.getLogger(__name__)


class AgendaStore(Protocol):
    """Read/write surface the engine needs from persistent storage."""

    def shifts_for_weekday(self, day_of_week: int) -> List[WorkShift]:
        """Return the shifts configured for a weekday (0=Sunday)."""

    def appointments_between(
        self,
        start: DateTime,
        end: DateTime,
        statuses: Iterable[AppointmentStatus],
    ) -> List[Appointment]:
        """Return appointments whose start lies in [start, end] with a given status."""

    def get_appointment_details(self, appointment_id: str) -> AppointmentDetails:
        """Return an appointment joined with its patient and service."""

    def insert_appointment(self, appointment: Appointment) -> Appointment:
        """Insert an appointment, rejecting a second active one at the same start."""

    def update_status(self, appointment_id: str, status: AppointmentStatus) -> Appointment:
        """Set an appointment's status."""

    def transition(
        self,
        appointment_id: str,
        expected: AppointmentStatus,
        status: AppointmentStatus,
    ) -> Appointment:
        """Move an appointment from ``expected`` to ``status`` in one step."""

    def set_external_event_id(self, appointment_id: str, event_id: str) -> Appointment:
        """Record the calendar event mirroring an appointment."""

    def get_service(self, service_id: str) -> Service:
        """Return a service by id."""

    def active_services(self) -> List[Service]:
        """Return the services offered for booking."""

    def get_or_create_patient(
        self,
        full_name: str,
        email: Optional[str],
        phone: Optional[str],
    ) -> Patient:
        """Find a patient by email or register a new one."""

    def load_outbox(self) -> Tuple[List[EmailMessage], List[EmailMessage]]:
        """Return the undelivered (pending, dead letter) notifications."""

    def save_outbox(
        self,
        pending: Sequence[EmailMessage],
        dead_letters: Sequence[EmailMessage],
    ) -> None:
        """Replace the undelivered notifications."""


def _new_id() -> str:
    return uuid.uuid4().hex


class InMemoryStore:
    """Thread-safe in-memory implementation of ``AgendaStore``."""

    def __init__(self):
        self._lock = threading.RLock()
        self.shifts: Dict[str, WorkShift] = {}
        self.services: Dict[str, Service] = {}
        self.patients: Dict[str, Patient] = {}
        self.appointments: Dict[str, Appointment] = {}
        self.outbox_pending: List[EmailMessage] = []
        self.outbox_dead_letters: List[EmailMessage] = []

    # Shifts

    def save_shift(self, shift: WorkShift) -> WorkShift:
        with self._lock:
            if shift.id is None:
                shift = replace(shift, id=_new_id())
            self.shifts[shift.id] = shift
            self._changed()
            return shift

    def delete_shift(self, shift_id: str) -> None:
        with self._lock:
            if self.shifts.pop(shift_id, None) is None:
                raise NotFoundError(f"Shift {shift_id} not found")
            self._changed()

    def list_shifts(self) -> List[WorkShift]:
        return sorted(self.shifts.values(), key=lambda s: (s.day_of_week, s.start_time))

    def shifts_for_weekday(self, day_of_week: int) -> List[WorkShift]:
        return [shift for shift in self.list_shifts() if shift.day_of_week == day_of_week]

    # Services

    def save_service(self, service: Service) -> Service:
        with self._lock:
            self.services[service.id] = service
            self._changed()
            return service

    def get_service(self, service_id: str) -> Service:
        try:
            return self.services[service_id]
        except KeyError:
            raise NotFoundError(f"Service {service_id} not found") from None

    def active_services(self) -> List[Service]:
        return [service for service in self.services.values() if service.is_active]

    # Patients

    def get_patient(self, patient_id: str) -> Patient:
        try:
            return self.patients[patient_id]
        except KeyError:
            raise NotFoundError(f"Patient {patient_id} not found") from None

    def get_or_create_patient(
        self,
        full_name: str,
        email: Optional[str],
        phone: Optional[str],
    ) -> Patient:
        with self._lock:
            if email:
                for patient in self.patients.values():
                    if patient.email and patient.email.lower() == email.lower():
                        return patient

            patient = Patient(id=_new_id(), full_name=full_name, email=email, phone=phone)
            self.patients[patient.id] = patient
            self._changed()
            return patient

    # Appointments

    def get_appointment(self, appointment_id: str) -> Appointment:
        try:
            return self.appointments[appointment_id]
        except KeyError:
            raise NotFoundError(f"Appointment {appointment_id} not found") from None

    def get_appointment_details(self, appointment_id: str) -> AppointmentDetails:
        appointment = self.get_appointment(appointment_id)
        return AppointmentDetails(
            appointment=appointment,
            patient=self.patients.get(appointment.patient_id),
            service=self.services.get(appointment.service_id),
        )

    def appointments_between(
        self,
        start: DateTime,
        end: DateTime,
        statuses: Iterable[AppointmentStatus],
    ) -> List[Appointment]:
        wanted = set(statuses)
        return sorted(
            (
                appointment
                for appointment in self.appointments.values()
                if appointment.status in wanted
                and appointment.start_time is not None
                and start <= appointment.start_time <= end
            ),
            key=lambda a: a.start_time,
        )

    def insert_appointment(self, appointment: Appointment) -> Appointment:
        with self._lock:
            if appointment.is_active():
                for existing in self.appointments.values():
                    if existing.is_active() and existing.start_time == appointment.start_time:
                        raise SlotConflictError(
                            f"Slot at {appointment.start_time} is already held by "
                            f"appointment {existing.id}"
                        )
            self.appointments[appointment.id] = appointment
            self._changed()
            return appointment

    def update_status(self, appointment_id: str, status: AppointmentStatus) -> Appointment:
        with self._lock:
            appointment = self.get_appointment(appointment_id)
            appointment.status = AppointmentStatus(status)
            self._changed()
            return appointment

    def transition(
        self,
        appointment_id: str,
        expected: AppointmentStatus,
        status: AppointmentStatus,
    ) -> Appointment:
        with self._lock:
            appointment = self.get_appointment(appointment_id)
            if appointment.status is not expected:
                raise InvalidTransitionError(
                    f"Appointment {appointment_id} is already {appointment.status.value}"
                )
            appointment.status = AppointmentStatus(status)
            self._changed()
            return appointment

    def set_external_event_id(self, appointment_id: str, event_id: str) -> Appointment:
        with self._lock:
            appointment = self.get_appointment(appointment_id)
            appointment.external_event_id = event_id
            self._changed()
            return appointment

    # Notification outbox

    def load_outbox(self) -> Tuple[List[EmailMessage], List[EmailMessage]]:
        with self._lock:
            return list(self.outbox_pending), list(self.outbox_dead_letters)

    def save_outbox(
        self,
        pending: Sequence[EmailMessage],
        dead_letters: Sequence[EmailMessage],
    ) -> None:
        with self._lock:
            self.outbox_pending = list(pending)
            self.outbox_dead_letters = list(dead_letters)
            self._changed()

    def _changed(self) -> None:
        """Hook called after every mutation."""


class JsonFileStore(InMemoryStore):
    """
    ``InMemoryStore`` persisted to a JSON file after every change.

    File format:
    {
        "shifts": [{"id": "...", "day_of_week": 1, "start_time": "08:00", "end_time": "12:00"}],
        "services": [{"id": "...", "name": "...", "price": 80.0, "duration_min": 60, "is_active": true}],
        "patients": [{"id": "...", "full_name": "...", "email": "...", "phone": "..."}],
        "appointments": [{"id": "...", "patient_id": "...", "service_id": "...",
                          "start_time": "2026-02-09T14:00:00Z", "end_time": "...",
                          "status": "pending", "external_event_id": null}],
        "outbox": {"pending": [{"recipient": "...", "subject": "...", "html": "...",
                               "attempts": 1, "last_error": "..."}], "dead_letters": []}
    }
    """

    def __init__(self, path: Path):
        super().__init__()
        self.path = path
        self._loading = False
        if path.exists():
            self._load()

    def _load(self) -> None:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f) or {}
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {self.path}: {exc}") from exc

        self._loading = True
        try:
            for raw in data.get("shifts", []):
                self.save_shift(
                    WorkShift(
                        id=raw.get("id"),
                        day_of_week=int(raw["day_of_week"]),
                        start_time=time.fromisoformat(raw["start_time"]),
                        end_time=time.fromisoformat(raw["end_time"]),
                    )
                )
            for raw in data.get("services", []):
                self.save_service(Service(**raw))
            for raw in data.get("patients", []):
                patient = Patient(**raw)
                self.patients[patient.id] = patient
            for raw in data.get("appointments", []):
                appointment = _appointment_from_dict(raw)
                self.appointments[appointment.id] = appointment
            outbox = data.get("outbox") or {}
            self.outbox_pending = [EmailMessage(**raw) for raw in outbox.get("pending", [])]
            self.outbox_dead_letters = [EmailMessage(**raw) for raw in outbox.get("dead_letters", [])]
        finally:
            self._loading = False

        logger.debug(
            "Loaded %d shifts and %d appointments from %s",
            len(self.shifts),
            len(self.appointments),
            self.path,
        )

    def _changed(self) -> None:
        if self._loading:
            return

        data = {
            "shifts": [
                {
                    "id": shift.id,
                    "day_of_week": shift.day_of_week,
                    "start_time": shift.start_time.strftime("%H:%M"),
                    "end_time": shift.end_time.strftime("%H:%M"),
                }
                for shift in self.list_shifts()
            ],
            "services": [vars(service) for service in self.services.values()],
            "patients": [vars(patient) for patient in self.patients.values()],
            "appointments": [_appointment_to_dict(a) for a in self.appointments.values()],
            "outbox": {
                "pending": [vars(message) for message in self.outbox_pending],
                "dead_letters": [vars(message) for message in self.outbox_dead_letters],
            },
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        tmp_path.replace(self.path)


def _parse_instant(value: Optional[str]) -> Optional[DateTime]:
    return pendulum.parse(value).in_timezone("UTC") if value else None


def _format_instant(value: Optional[DateTime]) -> Optional[str]:
    return value.in_timezone("UTC").to_iso8601_string() if value else None


def _appointment_from_dict(raw: Dict[str, Any]) -> Appointment:
    return Appointment(
        id=raw["id"],
        patient_id=raw["patient_id"],
        service_id=raw["service_id"],
        start_time=_parse_instant(raw.get("start_time")),
        end_time=_parse_instant(raw.get("end_time")),
        status=AppointmentStatus(raw.get("status", "pending")),
        external_event_id=raw.get("external_event_id"),
        created_at=_parse_instant(raw.get("created_at")),
    )


def _appointment_to_dict(appointment: Appointment) -> Dict[str, Any]:
    return {
        "id": appointment.id,
        "patient_id": appointment.patient_id,
        "service_id": appointment.service_id,
        "start_time": _format_instant(appointment.start_time),
        "end_time": _format_instant(appointment.end_time),
        "status": appointment.status.value,
        "external_event_id": appointment.external_event_id,
        "created_at": _format_instant(appointment.created_at),
    }
