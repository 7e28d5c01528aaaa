"""
Tests for mirroring confirmed appointments to the calendar.
"""

import pytest

from agendasync.adapters.notifier import LogNotifier
from agendasync.domain.exceptions import (
    IncompleteDataError,
    NotificationError,
    UpstreamWriteError,
)
from agendasync.domain.models import Appointment, AppointmentDetails, AppointmentStatus, Patient
from agendasync.services.notifications import NotificationOutbox
from agendasync.services.synchronizer import BookingSynchronizer
from fakes import StubCalendar, make_appointment


class FailingNotifier:
    def __init__(self):
        self.attempts = 0

    def send(self, message):
        self.attempts += 1
        raise NotificationError("smtp down")


def _confirmed(store):
    appointment = make_appointment("2026-02-09T14:00:00Z", status=AppointmentStatus.CONFIRMED)
    store.insert_appointment(appointment)
    return store.get_appointment_details(appointment.id)


def _synchronizer(store, config, calendar, notifier=None):
    outbox = NotificationOutbox(notifier or LogNotifier())
    return BookingSynchronizer(
        calendar_client=calendar,
        store=store,
        outbox=outbox,
        config=config,
        calendar_id="cal-1",
    )


class TestBookingSynchronizer:
    """Tests for BookingSynchronizer."""

    def test_creates_event_and_records_id(self, store, config):
        calendar = StubCalendar()
        notifier = LogNotifier()
        details = _confirmed(store)

        event_id = _synchronizer(store, config, calendar, notifier).synchronize(details)

        assert event_id == "evt-1"
        assert store.get_appointment("apt-1").external_event_id == "evt-1"
        assert len(notifier.sent) == 1
        assert notifier.sent[0].recipient == "ana@example.com"

    def test_event_content(self, store, config):
        """Summary names service and patient; description carries contact data."""
        calendar = StubCalendar()
        details = _confirmed(store)

        _synchronizer(store, config, calendar).synchronize(details)

        draft = calendar.drafts[0]
        assert draft.summary == "PSI: Therapy - Ana Pérez"
        assert "+57 300 000 0000" in draft.description
        assert "ana@example.com" in draft.description
        assert draft.time_zone == "America/Bogota"
        assert draft.start == details.appointment.start_time
        assert draft.end == details.appointment.end_time

    def test_missing_service_uses_default_label(self, store, config):
        calendar = StubCalendar()
        details = _confirmed(store)
        details.service = None

        _synchronizer(store, config, calendar).synchronize(details)

        assert calendar.drafts[0].summary == "PSI: Consultation - Ana Pérez"

    def test_missing_times_fail_before_any_call(self, store, config):
        calendar = StubCalendar()
        details = AppointmentDetails(
            appointment=Appointment(
                id="apt-x",
                patient_id="pat-1",
                service_id="svc-therapy",
                start_time=None,
                end_time=None,
                status=AppointmentStatus.CONFIRMED,
            ),
            patient=store.get_patient("pat-1"),
        )

        with pytest.raises(IncompleteDataError, match="start_time"):
            _synchronizer(store, config, calendar).synchronize(details)

        assert calendar.drafts == []

    def test_missing_patient_fails(self, store, config):
        calendar = StubCalendar()
        details = _confirmed(store)
        details.patient = None

        with pytest.raises(IncompleteDataError, match="patient"):
            _synchronizer(store, config, calendar).synchronize(details)

        assert calendar.drafts == []

    def test_failed_write_leaves_no_event_id(self, store, config):
        calendar = StubCalendar(create_error=UpstreamWriteError("HTTP 500"))
        notifier = LogNotifier()
        details = _confirmed(store)

        with pytest.raises(UpstreamWriteError):
            _synchronizer(store, config, calendar, notifier).synchronize(details)

        appointment = store.get_appointment("apt-1")
        assert appointment.external_event_id is None
        assert appointment.status is AppointmentStatus.CONFIRMED
        assert notifier.sent == []

    def test_already_synced_is_skipped(self, store, config):
        """Running twice creates a single event."""
        calendar = StubCalendar()
        synchronizer = _synchronizer(store, config, calendar)

        first = synchronizer.synchronize(_confirmed(store))
        second = synchronizer.synchronize(store.get_appointment_details("apt-1"))

        assert first == second == "evt-1"
        assert len(calendar.drafts) == 1

    def test_notification_failure_does_not_fail_sync(self, store, config):
        calendar = StubCalendar()
        notifier = FailingNotifier()
        synchronizer = _synchronizer(store, config, calendar, notifier)

        event_id = synchronizer.synchronize(_confirmed(store))

        assert event_id == "evt-1"
        assert store.get_appointment("apt-1").external_event_id == "evt-1"
        assert notifier.attempts == 1

    def test_patient_without_email_is_not_notified(self, store, config):
        notifier = LogNotifier()
        store.patients["pat-1"] = Patient(id="pat-1", full_name="Ana Pérez", phone="+57 300")

        _synchronizer(store, config, StubCalendar(), notifier).synchronize(_confirmed(store))

        assert notifier.sent == []

    def test_render_failure_does_not_fail_sync(self, store, config):
        """A locale pendulum cannot load only loses the email."""
        config.provider.locale = "xx"
        notifier = LogNotifier()

        event_id = _synchronizer(store, config, StubCalendar(), notifier).synchronize(_confirmed(store))

        assert event_id == "evt-1"
        assert store.get_appointment("apt-1").external_event_id == "evt-1"
        assert notifier.sent == []
