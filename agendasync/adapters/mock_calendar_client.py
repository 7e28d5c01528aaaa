"""
Mock calendar client for running without Google credentials.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pendulum import DateTime

from ..domain.models import EventDraft, ExternalEvent
from .calendar_client import parse_event

logger = logging.getLogger(__name__)


DEFAULT_EVENTS_FILE = Path(__file__).parent / "mock_calendar_events.json"


class MockCalendarClient:
    """
    Mock client that simulates the calendar API.

    Events are loaded from a JSON file of event resources in the same format
    the real API returns. Created events are kept in memory and show up in
    later listings.
    """

    def __init__(self, events_file: Optional[Path] = None):
        """
        Initialize the mock client.

        Args:
            events_file: JSON file with a list of event resources; defaults to
                the bundled sample calendar
        """
        self.events_file = events_file or DEFAULT_EVENTS_FILE
        self.created: List[Dict[str, Any]] = []
        self._load_calendar_data()

    def _load_calendar_data(self):
        """Load mock calendar data from JSON file."""
        if self.events_file.exists():
            with open(self.events_file, "r", encoding="utf-8") as f:
                self.calendar_events = json.load(f)
        else:
            logger.warning("Mock events file %s not found, using an empty calendar", self.events_file)
            self.calendar_events = []

    def list_events(
        self,
        calendar_id: str,
        start_time: DateTime,
        end_time: DateTime,
    ) -> List[ExternalEvent]:
        """Return stored events intersecting the window."""
        events: List[ExternalEvent] = []

        for item in self.calendar_events + self.created:
            calendar = item.get("calendarId")
            if calendar and calendar != calendar_id:
                continue

            event = parse_event(item)
            if event.all_day:
                window_start = start_time.date()
                window_end = end_time.date()
                if event.start <= window_end and event.end > window_start:
                    events.append(event)
            elif event.start < end_time and event.end > start_time:
                events.append(event)

        return events

    def create_event(self, calendar_id: str, draft: EventDraft) -> str:
        """Record the draft and hand out a fake event id."""
        event_id = f"mock-event-{len(self.created) + 1}"
        self.created.append({"id": event_id, "calendarId": calendar_id, **draft.to_payload()})
        return event_id

    def test_connection(self, calendar_id: str) -> Dict[str, Any]:
        return {"id": calendar_id, "summary": "Mock Calendar", "timeZone": "UTC"}
