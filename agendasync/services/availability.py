"""
Application service resolving bookable slots for a date.

The resolver fetches the day's shifts from storage, busy markers through the
``BusyTimeAggregator`` and delegates the merge to the domain-level
``SlotGenerator``. Results are computed live on every call.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Dict, List, Optional, Sequence

from ..adapters.storage import AgendaStore
from ..domain.models import Slot
from ..domain.slot_generator import SlotGenerator, format_hour, local_weekday
from .busy_time import BusyTimeAggregator

logger = logging.getLogger(__name__)


class AvailabilityResolver:
    """Orchestrates shift lookup, busy-time retrieval and slot generation."""

    def __init__(
        self,
        store: AgendaStore,
        busy_aggregator: BusyTimeAggregator,
        slot_generator: Optional[SlotGenerator] = None,
    ) -> None:
        self._store = store
        self._busy_aggregator = busy_aggregator
        self._slot_generator = slot_generator or SlotGenerator()

    def resolve(self, day: date) -> List[Slot]:
        """
        Return the ordered slot list for ``day``.

        An empty list means the provider does not work that weekday.

        Raises:
            AuthConfigError, AuthExchangeError, UpstreamQueryError: If a busy
                source could not be read
        """
        weekday = local_weekday(day, self._busy_aggregator.timezone)
        shifts = self._store.shifts_for_weekday(weekday)

        if not shifts:
            logger.info("No shifts configured for %s (weekday %d)", day, weekday)
            return []

        markers = self._busy_aggregator.collect(day)
        slots = self._slot_generator.build_slots(shifts, markers)

        logger.info(
            "Resolved %s: %d slots, %d available",
            day,
            len(slots),
            sum(1 for slot in slots if slot.available),
        )
        return slots

    def resolve_many(self, days: Sequence[date], max_workers: int = 4) -> Dict[date, List[Slot]]:
        """
        Resolve several dates in parallel.

        A failure on any date propagates; no partial result is returned.
        """
        if not days:
            return {}

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = executor.map(self.resolve, days)
            return dict(zip(days, results))

    def is_available(self, day: date, hour: int) -> bool:
        """Check whether the slot starting at ``hour`` is offered and free."""
        wanted = format_hour(hour)
        return any(slot.time == wanted and slot.available for slot in self.resolve(day))
