"""
Collects busy markers for one day from local storage and the external
calendar.

The two sources need different timezone handling. Stored appointments are
absolute UTC instants, so their hour is read after shifting by the provider's
fixed offset. External events already come rendered in the provider's offset,
so their hour is read as-is; shifting them again would double-correct.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Protocol, Tuple

import pendulum
from pendulum import DateTime
from pendulum.tz.timezone import FixedTimezone

from ..adapters.storage import AgendaStore
from ..domain.models import ACTIVE_STATUSES, BusyMarker, BusySource, ExternalEvent

logger = logging.getLogger(__name__)


class CalendarReader(Protocol):
    """Protocol describing the calendar read access needed here."""

    def list_events(
        self,
        calendar_id: str,
        start_time: DateTime,
        end_time: DateTime,
    ) -> List[ExternalEvent]:
        """Return single event instances intersecting the window."""


class BusyTimeAggregator:
    """Normalizes both busy sources into provider-local hour markers."""

    def __init__(
        self,
        store: AgendaStore,
        calendar_client: CalendarReader,
        calendar_id: str,
        utc_offset: FixedTimezone,
    ) -> None:
        self._store = store
        self._calendar_client = calendar_client
        self.calendar_id = calendar_id
        self.timezone = utc_offset

    def collect(self, day: date) -> List[BusyMarker]:
        """
        Gather markers from both sources.

        Raises:
            AuthConfigError, AuthExchangeError, UpstreamQueryError: If the
                external calendar cannot be read. A failed query is never
                treated as an empty calendar.
        """
        markers = self.local_busy_markers(day)
        markers.extend(self.external_busy_markers(day))
        return markers

    def local_day_bounds(self, day: date) -> Tuple[DateTime, DateTime]:
        """First and last second of ``day`` in provider-local time."""
        start = pendulum.datetime(day.year, day.month, day.day, tz=self.timezone)
        return start, start.add(days=1).subtract(seconds=1)

    def local_busy_markers(self, day: date) -> List[BusyMarker]:
        """Hours held by pending or confirmed appointments starting on ``day``."""
        start, end = self.local_day_bounds(day)
        appointments = self._store.appointments_between(
            start.in_timezone("UTC"),
            end.in_timezone("UTC"),
            ACTIVE_STATUSES,
        )

        markers = [
            BusyMarker(
                source=BusySource.LOCAL,
                hour=appointment.start_time.in_timezone(self.timezone).hour,
            )
            for appointment in appointments
        ]
        logger.debug("%d local busy markers on %s", len(markers), day)
        return markers

    def external_busy_markers(self, day: date) -> List[BusyMarker]:
        """Hours (or the whole day) taken by external calendar events."""
        window_start, window_end = self._external_window(day)
        events = self._calendar_client.list_events(
            self.calendar_id,
            window_start,
            window_end,
        )

        markers: List[BusyMarker] = []
        for event in events:
            if not event.occurs_on(day):
                continue
            if event.all_day:
                markers.append(BusyMarker.whole_day_busy(BusySource.EXTERNAL))
            else:
                markers.append(BusyMarker(source=BusySource.EXTERNAL, hour=event.local_start_hour))

        logger.debug(
            "%d external busy markers on %s from %d events",
            len(markers),
            day,
            len(events),
        )
        return markers

    def _external_window(self, day: date) -> Tuple[DateTime, DateTime]:
        """
        The UTC day widened to also cover the provider-local day, so that
        events late in the local evening are not cut off.
        """
        utc_start = pendulum.datetime(day.year, day.month, day.day, tz="UTC")
        utc_end = utc_start.add(days=1).subtract(seconds=1)
        local_start, local_end = self.local_day_bounds(day)
        return min(utc_start, local_start), max(utc_end, local_end)
