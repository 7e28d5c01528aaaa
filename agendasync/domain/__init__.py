"""
Domain layer - Pure scheduling logic without external dependencies.
"""

from .models import (
    AppointmentStatus,
    Appointment,
    AppointmentDetails,
    BusyMarker,
    BusySource,
    ExternalEvent,
    EventDraft,
    Patient,
    Service,
    Slot,
    WorkShift,
)
from .slot_generator import SlotGenerator

__all__ = [
    "AppointmentStatus",
    "Appointment",
    "AppointmentDetails",
    "BusyMarker",
    "BusySource",
    "ExternalEvent",
    "EventDraft",
    "Patient",
    "Service",
    "Slot",
    "WorkShift",
    "SlotGenerator",
]
