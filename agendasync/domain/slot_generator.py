"""
Core business logic for turning work shifts and busy markers into slots.

This is pure domain logic without any external dependencies (no API calls,
no storage, no I/O).
"""

from datetime import date
from typing import Iterable, List, Sequence, Set

import pendulum
from pendulum.tz.timezone import FixedTimezone

from .models import BusyMarker, BusySource, Slot, WorkShift


def local_weekday(day: date, tz: FixedTimezone) -> int:
    """
    Weekday of a calendar date in provider-local time, 0=Sunday.

    The date is anchored to local noon so that no offset can shift it onto
    the neighbouring day.
    """
    noon = pendulum.datetime(day.year, day.month, day.day, 12, tz=tz)
    return noon.isoweekday() % 7


def format_hour(hour: int) -> str:
    return f"{hour:02d}:00"


class SlotGenerator:
    """
    Expands work shifts into one-hour slots and flags them against busy
    markers.

    Algorithm:
    1. Every shift yields one slot per whole hour, from its start hour up to
       its end hour minus one
    2. Overlapping shifts collapse onto a single slot per hour
    3. A slot is busy if the whole day is busy or any source claims its hour
    4. Slots are returned sorted by time of day
    """

    def expand(self, shifts: Iterable[WorkShift]) -> List[int]:
        """Return the sorted, de-duplicated slot start hours of the shifts."""
        hours: Set[int] = set()
        for shift in shifts:
            hours.update(shift.slot_hours())
        return sorted(hours)

    def build_slots(
        self,
        shifts: Sequence[WorkShift],
        busy_markers: Iterable[BusyMarker],
    ) -> List[Slot]:
        """
        Build the final slot list for one day.

        Args:
            shifts: Work shifts configured for the day's weekday
            busy_markers: Markers from every busy source, unioned

        Returns:
            Slots sorted ascending by ``time``
        """
        hours = self.expand(shifts)
        if not hours:
            return []

        markers = list(busy_markers)
        whole_day_busy = any(
            marker.is_whole_day and marker.source is BusySource.EXTERNAL
            for marker in markers
        )
        busy_hours = {marker.hour for marker in markers if not marker.is_whole_day}

        slots = [
            Slot(
                time=format_hour(hour),
                available=not (whole_day_busy or hour in busy_hours),
            )
            for hour in hours
        ]
        slots.sort(key=lambda slot: slot.time)
        return slots
