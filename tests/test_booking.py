"""
Tests for the booking desk.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import time

import pendulum
import pytest

from agendasync.adapters.notifier import LogNotifier
from agendasync.domain.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    SlotConflictError,
    SlotUnavailableError,
    UpstreamWriteError,
)
from agendasync.domain.models import AppointmentStatus, Service
from agendasync.services.availability import AvailabilityResolver
from agendasync.services.booking import BookingAction, BookingDesk, BookingRequest
from agendasync.services.busy_time import BusyTimeAggregator
from agendasync.services.notifications import NotificationOutbox
from agendasync.services.synchronizer import BookingSynchronizer
from fakes import MONDAY, PROVIDER_TZ, StubCalendar, make_appointment


def _desk(store, config, calendar=None):
    calendar = calendar or StubCalendar()
    aggregator = BusyTimeAggregator(store, calendar, "cal-1", PROVIDER_TZ)
    resolver = AvailabilityResolver(store=store, busy_aggregator=aggregator)
    synchronizer = BookingSynchronizer(
        calendar_client=calendar,
        store=store,
        outbox=NotificationOutbox(LogNotifier()),
        config=config,
        calendar_id="cal-1",
    )
    return BookingDesk(store=store, resolver=resolver, synchronizer=synchronizer, utc_offset=PROVIDER_TZ)


def _request(hour: int = 9, **kwargs) -> BookingRequest:
    values = dict(
        service_id="svc-therapy",
        day=MONDAY,
        start=time(hour, 0),
        full_name="Luis Gómez",
        email="luis@example.com",
        phone="+57 311 000 0000",
    )
    values.update(kwargs)
    return BookingRequest(**values)


class TestRequestBooking:
    """Tests for creating pending appointments."""

    def test_creates_pending_appointment_in_utc(self, store, config):
        """09:00 local becomes 14:00Z; the end follows the service duration."""
        appointment = _desk(store, config).request_booking(_request())

        assert appointment.status is AppointmentStatus.PENDING
        assert appointment.start_time == pendulum.datetime(2026, 2, 9, 14, tz="UTC")
        assert appointment.end_time == pendulum.datetime(2026, 2, 9, 15, tz="UTC")
        assert store.get_patient(appointment.patient_id).email == "luis@example.com"

    def test_booked_slot_is_no_longer_available(self, store, config):
        desk = _desk(store, config)
        desk.request_booking(_request())

        with pytest.raises(SlotUnavailableError):
            desk.request_booking(_request(email="other@example.com"))

    def test_slot_outside_shift(self, store, config):
        with pytest.raises(SlotUnavailableError):
            _desk(store, config).request_booking(_request(hour=13))

    def test_slot_must_start_on_the_hour(self, store, config):
        with pytest.raises(SlotUnavailableError):
            _desk(store, config).request_booking(_request(start=time(9, 30)))

    def test_inactive_service(self, store, config):
        store.save_service(Service(id="svc-old", name="Old", price=1.0, duration_min=30, is_active=False))

        with pytest.raises(SlotUnavailableError, match="not offered"):
            _desk(store, config).request_booking(_request(service_id="svc-old"))

    def test_unknown_service(self, store, config):
        with pytest.raises(NotFoundError):
            _desk(store, config).request_booking(_request(service_id="svc-missing"))

    def test_storage_rejects_double_booking(self, store):
        """Two active appointments can never share a start."""
        store.insert_appointment(make_appointment("2026-02-09T14:00:00Z", appointment_id="a"))

        with pytest.raises(SlotConflictError):
            store.insert_appointment(make_appointment("2026-02-09T14:00:00Z", appointment_id="b"))


class TestApplyAction:
    """Tests for operator actions."""

    def test_confirm_synchronizes(self, store, config):
        calendar = StubCalendar()
        store.insert_appointment(make_appointment("2026-02-09T14:00:00Z"))

        outcome = _desk(store, config, calendar).apply(BookingAction.CONFIRM, "apt-1")

        assert outcome.appointment.status is AppointmentStatus.CONFIRMED
        assert outcome.external_event_id == "evt-1"
        assert not outcome.sync_failed
        assert store.get_appointment("apt-1").external_event_id == "evt-1"

    def test_reject_does_not_touch_calendar(self, store, config):
        calendar = StubCalendar()
        store.insert_appointment(make_appointment("2026-02-09T14:00:00Z"))

        outcome = _desk(store, config, calendar).apply("reject", "apt-1")

        assert outcome.appointment.status is AppointmentStatus.REJECTED
        assert calendar.drafts == []

    def test_only_pending_can_transition(self, store, config):
        store.insert_appointment(make_appointment("2026-02-09T14:00:00Z"))
        desk = _desk(store, config)
        desk.apply(BookingAction.REJECT, "apt-1")

        with pytest.raises(InvalidTransitionError):
            desk.apply(BookingAction.CONFIRM, "apt-1")

    def test_unknown_action(self, store, config):
        with pytest.raises(ValueError):
            _desk(store, config).apply("archive", "apt-1")

    def test_sync_failure_keeps_confirmation(self, store, config):
        """The confirmation stands; the outcome reports the calendar failure."""
        calendar = StubCalendar(create_error=UpstreamWriteError("HTTP 500"))
        store.insert_appointment(make_appointment("2026-02-09T14:00:00Z"))
        desk = _desk(store, config, calendar)

        outcome = desk.apply(BookingAction.CONFIRM, "apt-1")

        assert outcome.sync_failed
        assert isinstance(outcome.sync_error, UpstreamWriteError)
        assert store.get_appointment("apt-1").status is AppointmentStatus.CONFIRMED
        assert store.get_appointment("apt-1").external_event_id is None

        calendar.create_error = None
        assert desk.retry_sync("apt-1") == "evt-1"
        assert desk.retry_sync("apt-1") == "evt-1"
        assert len(calendar.drafts) == 1

    def test_retry_sync_requires_confirmation(self, store, config):
        store.insert_appointment(make_appointment("2026-02-09T14:00:00Z"))

        with pytest.raises(InvalidTransitionError):
            _desk(store, config).retry_sync("apt-1")

    def test_concurrent_confirms_sync_once(self, store, config):
        """Only one of several simultaneous confirms wins the transition."""
        calendar = StubCalendar()
        store.insert_appointment(make_appointment("2026-02-09T14:00:00Z"))
        desk = _desk(store, config, calendar)

        def confirm(_):
            try:
                return desk.apply(BookingAction.CONFIRM, "apt-1")
            except InvalidTransitionError:
                return None

        with ThreadPoolExecutor(max_workers=8) as executor:
            outcomes = [outcome for outcome in executor.map(confirm, range(8)) if outcome]

        assert len(outcomes) == 1
        assert len(calendar.drafts) == 1
