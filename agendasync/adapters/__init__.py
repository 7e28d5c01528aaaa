"""
Adapters layer - External integrations (Google Calendar, email, storage).
"""

from .calendar_client import GoogleCalendarClient
from .mock_calendar_client import MockCalendarClient
from .notifier import LogNotifier, ResendNotifier, build_notifier
from .storage import InMemoryStore, JsonFileStore
from .token_issuer import ServiceAccountTokenIssuer

__all__ = [
    "GoogleCalendarClient",
    "MockCalendarClient",
    "LogNotifier",
    "ResendNotifier",
    "build_notifier",
    "InMemoryStore",
    "JsonFileStore",
    "ServiceAccountTokenIssuer",
]
