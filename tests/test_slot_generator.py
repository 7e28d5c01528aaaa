"""
Tests for the slot generator.
"""

from datetime import time

import pendulum
from pendulum.tz.timezone import FixedTimezone

from agendasync.domain.models import BusyMarker, BusySource, WorkShift
from agendasync.domain.slot_generator import SlotGenerator, format_hour, local_weekday
from fakes import PROVIDER_TZ


def _shift(start: int, end: int, day_of_week: int = 1) -> WorkShift:
    return WorkShift(day_of_week=day_of_week, start_time=time(start, 0), end_time=time(end, 0))


class TestLocalWeekday:
    """Tests for weekday resolution in provider-local time."""

    def test_sunday_is_zero(self):
        assert local_weekday(pendulum.date(2026, 2, 8), PROVIDER_TZ) == 0
        assert local_weekday(pendulum.date(2026, 2, 9), PROVIDER_TZ) == 1
        assert local_weekday(pendulum.date(2026, 2, 14), PROVIDER_TZ) == 6

    def test_extreme_offsets_do_not_shift_the_day(self):
        """Anchoring at local noon keeps the weekday stable for any offset."""
        monday = pendulum.date(2026, 2, 9)

        assert local_weekday(monday, FixedTimezone(14 * 3600)) == 1
        assert local_weekday(monday, FixedTimezone(-12 * 3600)) == 1


class TestSlotGenerator:
    """Tests for SlotGenerator."""

    def test_no_shifts_yields_no_slots(self):
        """A non-working day has no slots, even with busy markers."""
        generator = SlotGenerator()

        slots = generator.build_slots([], [BusyMarker.whole_day_busy(BusySource.EXTERNAL)])

        assert slots == []

    def test_free_shift(self):
        """Test one slot per hour up to the shift end."""
        slots = SlotGenerator().build_slots([_shift(8, 12)], [])

        assert [slot.time for slot in slots] == ["08:00", "09:00", "10:00", "11:00"]
        assert all(slot.available for slot in slots)

    def test_split_shifts_are_sorted(self):
        """Shifts given out of order still produce ascending slots."""
        slots = SlotGenerator().build_slots([_shift(14, 16), _shift(8, 10)], [])

        assert [slot.time for slot in slots] == ["08:00", "09:00", "14:00", "15:00"]

    def test_overlapping_shifts_yield_unique_times(self):
        """Overlapping shifts collapse onto one slot per hour."""
        slots = SlotGenerator().build_slots([_shift(8, 12), _shift(10, 14)], [])
        times = [slot.time for slot in slots]

        assert times == sorted(set(times))
        assert times == ["08:00", "09:00", "10:00", "11:00", "12:00", "13:00"]

    def test_busy_sources_are_unioned(self):
        """A slot is busy if either source claims its hour."""
        markers = [
            BusyMarker(source=BusySource.LOCAL, hour=9),
            BusyMarker(source=BusySource.EXTERNAL, hour=11),
        ]

        slots = SlotGenerator().build_slots([_shift(8, 12)], markers)

        assert {slot.time: slot.available for slot in slots} == {
            "08:00": True,
            "09:00": False,
            "10:00": True,
            "11:00": False,
        }

    def test_whole_day_external_marker_blocks_everything(self):
        markers = [BusyMarker.whole_day_busy(BusySource.EXTERNAL)]

        slots = SlotGenerator().build_slots([_shift(8, 12), _shift(14, 18)], markers)

        assert len(slots) == 8
        assert not any(slot.available for slot in slots)

    def test_markers_outside_shift_are_ignored(self):
        """Busy hours that no shift offers do not add slots."""
        slots = SlotGenerator().build_slots([_shift(8, 10)], [BusyMarker(BusySource.LOCAL, hour=15)])

        assert [slot.time for slot in slots] == ["08:00", "09:00"]
        assert all(slot.available for slot in slots)

    def test_format_hour(self):
        assert format_hour(8) == "08:00"
        assert format_hour(17) == "17:00"
