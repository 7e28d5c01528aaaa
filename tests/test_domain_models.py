"""
Tests for domain models.
"""

from datetime import time

import pendulum
import pytest

from agendasync.domain.models import (
    AccessToken,
    Appointment,
    AppointmentStatus,
    EventDraft,
    Service,
    Slot,
    WorkShift,
)
from fakes import all_day_event, make_appointment, timed_event


class TestWorkShift:
    """Tests for WorkShift."""

    def test_valid_shift(self):
        """Test creating a valid shift."""
        shift = WorkShift(day_of_week=1, start_time=time(8, 0), end_time=time(12, 0))

        assert shift.day_of_week == 1
        assert list(shift.slot_hours()) == [8, 9, 10, 11]

    def test_start_must_precede_end(self):
        """Test that an inverted or empty shift is rejected."""
        with pytest.raises(ValueError, match="must be before end"):
            WorkShift(day_of_week=1, start_time=time(12, 0), end_time=time(8, 0))

        with pytest.raises(ValueError, match="must be before end"):
            WorkShift(day_of_week=1, start_time=time(8, 0), end_time=time(8, 0))

    def test_day_of_week_range(self):
        """Test that weekdays outside 0..6 are rejected."""
        with pytest.raises(ValueError, match="day_of_week"):
            WorkShift(day_of_week=7, start_time=time(8, 0), end_time=time(12, 0))

    def test_partial_hours_are_truncated(self):
        """Minutes are dropped: 08:30-11:45 offers 08, 09 and 10."""
        shift = WorkShift(day_of_week=2, start_time=time(8, 30), end_time=time(11, 45))

        assert list(shift.slot_hours()) == [8, 9, 10]


class TestAppointment:
    """Tests for Appointment."""

    def test_status_is_coerced(self):
        """A raw status string becomes the enum member."""
        start = pendulum.datetime(2026, 2, 9, 14, tz="UTC")
        appointment = Appointment(
            id="a",
            patient_id="p",
            service_id="s",
            start_time=start,
            end_time=start.add(hours=1),
            status="confirmed",
        )

        assert appointment.status is AppointmentStatus.CONFIRMED
        assert appointment.is_active()
        assert not appointment.is_synced

    def test_invalid_time_range(self):
        """Test that end before start is rejected."""
        start = pendulum.datetime(2026, 2, 9, 14, tz="UTC")

        with pytest.raises(ValueError, match="must be before end time"):
            Appointment(
                id="a",
                patient_id="p",
                service_id="s",
                start_time=start,
                end_time=start.subtract(hours=1),
            )

    def test_rejected_is_not_active(self):
        appointment = make_appointment("2026-02-09T14:00:00Z", status=AppointmentStatus.REJECTED)

        assert not appointment.is_active()

    def test_missing_times_are_allowed(self):
        """Incomplete records can exist; synchronization refuses them later."""
        appointment = Appointment(id="a", patient_id="p", service_id="s", start_time=None, end_time=None)

        assert appointment.start_time is None


class TestService:
    def test_duration_must_be_positive(self):
        with pytest.raises(ValueError, match="duration_min"):
            Service(id="s", name="Therapy", price=10.0, duration_min=0)


class TestExternalEvent:
    """Tests for ExternalEvent day membership."""

    def test_timed_event_keeps_its_offset(self):
        """The hour reads as rendered by the calendar."""
        event = timed_event("2026-02-09T08:00:00-05:00", "2026-02-09T09:00:00-05:00")

        assert event.local_start_hour == 8
        assert event.occurs_on(pendulum.date(2026, 2, 9))
        assert not event.occurs_on(pendulum.date(2026, 2, 10))

    def test_late_evening_event_stays_on_its_local_day(self):
        """21:00 local is already the next day in UTC, but belongs to the 9th."""
        event = timed_event("2026-02-09T21:00:00-05:00", "2026-02-09T22:00:00-05:00")

        assert event.occurs_on(pendulum.date(2026, 2, 9))

    def test_all_day_event_end_is_exclusive(self):
        """An all-day event covers [start, end)."""
        event = all_day_event("2026-02-08", "2026-02-10")

        assert event.local_start_hour is None
        assert event.occurs_on(pendulum.date(2026, 2, 8))
        assert event.occurs_on(pendulum.date(2026, 2, 9))
        assert not event.occurs_on(pendulum.date(2026, 2, 10))


class TestEventDraft:
    def test_payload_format(self):
        """Instants are sent as ISO strings together with the display timezone."""
        start = pendulum.datetime(2026, 2, 9, 14, tz="UTC")
        draft = EventDraft(
            summary="PSI: Therapy - Ana",
            description="Patient: Ana",
            start=start,
            end=start.add(hours=1),
            time_zone="America/Bogota",
        )

        payload = draft.to_payload()

        assert payload["summary"] == "PSI: Therapy - Ana"
        assert payload["start"] == {"dateTime": "2026-02-09T14:00:00Z", "timeZone": "America/Bogota"}
        assert payload["end"]["dateTime"] == "2026-02-09T15:00:00Z"


class TestAccessToken:
    def test_freshness_respects_margin(self):
        """A token expiring inside the margin counts as stale."""
        now = pendulum.datetime(2026, 2, 9, 12, tz="UTC")

        assert AccessToken("t", expires_at=now.add(seconds=120)).is_fresh(now, margin_seconds=60)
        assert not AccessToken("t", expires_at=now.add(seconds=30)).is_fresh(now, margin_seconds=60)


class TestSlot:
    def test_hour_and_dict(self):
        slot = Slot(time="09:00", available=False)

        assert slot.hour == 9
        assert slot.to_dict() == {"time": "09:00", "available": False}
