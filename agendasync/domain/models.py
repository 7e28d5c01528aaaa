"""
Domain models for shifts, appointments, slots and calendar events.
"""

from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Any, Dict, Optional, Union

from pendulum import Date, DateTime


class AppointmentStatus(str, Enum):
    """Lifecycle states of an appointment."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


# Statuses that occupy a slot
ACTIVE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})


@dataclass(frozen=True)
class WorkShift:
    """
    A contiguous working-hours interval for one weekday, in provider-local
    wall-clock time.

    Invariant: start_time must be before end_time.
    """
    day_of_week: int  # 0=Sunday, 6=Saturday
    start_time: time
    end_time: time
    id: Optional[str] = None

    def __post_init__(self):
        if not 0 <= self.day_of_week <= 6:
            raise ValueError(f"day_of_week must be between 0 and 6, got {self.day_of_week}")
        if self.start_time >= self.end_time:
            raise ValueError(
                f"Shift start {self.start_time} must be before end {self.end_time}"
            )

    def slot_hours(self) -> range:
        """Whole hours at which a one-hour slot starts within this shift."""
        return range(self.start_time.hour, self.end_time.hour)


@dataclass(frozen=True)
class Service:
    """A bookable service; its duration sets the appointment length."""
    id: str
    name: str
    price: float
    duration_min: int
    is_active: bool = True

    def __post_init__(self):
        if self.duration_min <= 0:
            raise ValueError("duration_min must be greater than zero")


@dataclass(frozen=True)
class Patient:
    id: str
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class Appointment:
    """
    A booking request for one service by one patient.

    Times are absolute instants stored in UTC. ``external_event_id`` is only
    set after a successful calendar synchronization.
    """
    id: str
    patient_id: str
    service_id: str
    start_time: Optional[DateTime]
    end_time: Optional[DateTime]
    status: AppointmentStatus = AppointmentStatus.PENDING
    external_event_id: Optional[str] = None
    created_at: Optional[DateTime] = None

    def __post_init__(self):
        self.status = AppointmentStatus(self.status)
        if self.start_time and self.end_time and self.start_time >= self.end_time:
            raise ValueError(
                f"Start time {self.start_time} must be before end time {self.end_time}"
            )

    def is_active(self) -> bool:
        """Check whether the appointment occupies its slot."""
        return self.status in ACTIVE_STATUSES

    @property
    def is_synced(self) -> bool:
        return bool(self.external_event_id)


@dataclass
class AppointmentDetails:
    """An appointment joined with its patient and service records."""
    appointment: Appointment
    patient: Optional[Patient] = None
    service: Optional[Service] = None


@dataclass(frozen=True)
class Slot:
    """A one-hour offer window within a shift."""
    time: str  # provider-local HH:MM
    available: bool

    @property
    def hour(self) -> int:
        return int(self.time.split(":")[0])

    def to_dict(self) -> Dict[str, Any]:
        return {"time": self.time, "available": self.available}


class BusySource(str, Enum):
    LOCAL = "local"
    EXTERNAL = "external"


@dataclass(frozen=True)
class BusyMarker:
    """
    A provider-local hour known to be occupied, or the whole-day sentinel
    when ``hour`` is None.
    """
    source: BusySource
    hour: Optional[int] = None

    @classmethod
    def whole_day_busy(cls, source: BusySource) -> "BusyMarker":
        return cls(source=source, hour=None)

    @property
    def is_whole_day(self) -> bool:
        return self.hour is None


@dataclass(frozen=True)
class ExternalEvent:
    """
    A single event instance read from the external calendar.

    Timed events keep the offset the calendar rendered them in, so ``start``
    already reads as provider-local time. All-day events carry dates and an
    exclusive end date.
    """
    id: str
    summary: str
    start: Union[DateTime, Date]
    end: Union[DateTime, Date]
    all_day: bool = False

    @property
    def local_start_hour(self) -> Optional[int]:
        """Hour of the event start in its own offset, None for all-day events."""
        if self.all_day:
            return None
        return self.start.hour

    def occurs_on(self, day: date) -> bool:
        """
        Check whether the event belongs to the given local day.

        Timed events belong to the day they start on; all-day events cover
        every date in [start, end).
        """
        if self.all_day:
            return _as_date(self.start) <= day < _as_date(self.end)
        return _as_date(self.start) == day


def _as_date(value: Union[DateTime, Date]) -> date:
    return date(value.year, value.month, value.day)


@dataclass(frozen=True)
class EventDraft:
    """Body of a calendar event to create."""
    summary: str
    description: str
    start: DateTime
    end: DateTime
    time_zone: str

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the calendar API's event resource format."""
        return {
            "summary": self.summary,
            "description": self.description,
            "start": {"dateTime": self.start.to_iso8601_string(), "timeZone": self.time_zone},
            "end": {"dateTime": self.end.to_iso8601_string(), "timeZone": self.time_zone},
        }


@dataclass(frozen=True)
class AccessToken:
    """A bearer credential and the instant it stops being valid."""
    value: str
    expires_at: DateTime
    scope: str = ""

    def is_fresh(self, now: DateTime, margin_seconds: int = 60) -> bool:
        """Check whether the token stays valid for at least ``margin_seconds``."""
        return now.add(seconds=margin_seconds) < self.expires_at


@dataclass
class EmailMessage:
    """A notification ready to be handed to a notifier."""
    recipient: str
    subject: str
    html: str
    attempts: int = 0
    last_error: Optional[str] = field(default=None, compare=False)
