"""
Service layer that orchestrates adapters and domain logic.
"""

from .availability import AvailabilityResolver
from .booking import ActionOutcome, BookingAction, BookingDesk, BookingRequest
from .busy_time import BusyTimeAggregator
from .engine import Engine, build_engine
from .notifications import NotificationOutbox
from .synchronizer import BookingSynchronizer

__all__ = [
    "AvailabilityResolver",
    "ActionOutcome",
    "BookingAction",
    "BookingDesk",
    "BookingRequest",
    "BusyTimeAggregator",
    "Engine",
    "build_engine",
    "NotificationOutbox",
    "BookingSynchronizer",
]
