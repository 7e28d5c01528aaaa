"""
Wiring of adapters and services from an ``AppConfig``.
"""

from dataclasses import dataclass
from typing import Optional, Union

import requests

from ..adapters.calendar_client import GoogleCalendarClient
from ..adapters.mock_calendar_client import MockCalendarClient
from ..adapters.notifier import build_notifier
from ..adapters.storage import AgendaStore, JsonFileStore
from ..adapters.token_issuer import ServiceAccountTokenIssuer
from ..config import AppConfig
from .availability import AvailabilityResolver
from .booking import BookingDesk
from .busy_time import BusyTimeAggregator
from .notifications import NotificationOutbox
from .synchronizer import BookingSynchronizer


@dataclass
class Engine:
    """Everything a caller needs to resolve slots and handle bookings."""
    config: AppConfig
    store: AgendaStore
    calendar_client: Union[GoogleCalendarClient, MockCalendarClient]
    resolver: AvailabilityResolver
    synchronizer: BookingSynchronizer
    outbox: NotificationOutbox
    desk: BookingDesk
    token_issuer: Optional[ServiceAccountTokenIssuer] = None


def build_engine(
    config: AppConfig,
    store: Optional[AgendaStore] = None,
    mock: bool = False,
) -> Engine:
    """
    Assemble the engine.

    Args:
        config: Application configuration
        store: Storage to use; defaults to the JSON file at ``config.storage_path``
        mock: Use the JSON-backed mock calendar instead of Google

    Raises:
        AuthConfigError: If not in mock mode and service-account credentials
            are missing
    """
    store = store or JsonFileStore(config.storage_path)
    session = requests.Session()
    token_issuer: Optional[ServiceAccountTokenIssuer] = None

    if mock:
        calendar_client = MockCalendarClient(events_file=config.mock_events_path)
        calendar_id = config.google.calendar_id or "primary"
    else:
        token_issuer = ServiceAccountTokenIssuer.from_config(config.google, session=session)
        calendar_client = GoogleCalendarClient.from_config(
            config.google,
            token_provider=token_issuer,
            session=session,
        )
        calendar_id = config.google.require_calendar_id()

    utc_offset = config.provider.fixed_timezone()
    aggregator = BusyTimeAggregator(
        store=store,
        calendar_client=calendar_client,
        calendar_id=calendar_id,
        utc_offset=utc_offset,
    )
    resolver = AvailabilityResolver(store=store, busy_aggregator=aggregator)

    outbox = NotificationOutbox(
        build_notifier(config.notifications, session=session),
        max_attempts=config.notifications.max_attempts,
        store=store,
    )
    synchronizer = BookingSynchronizer(
        calendar_client=calendar_client,
        store=store,
        outbox=outbox,
        config=config,
        calendar_id=calendar_id,
    )
    desk = BookingDesk(
        store=store,
        resolver=resolver,
        synchronizer=synchronizer,
        utc_offset=utc_offset,
    )

    return Engine(
        config=config,
        store=store,
        calendar_client=calendar_client,
        resolver=resolver,
        synchronizer=synchronizer,
        outbox=outbox,
        desk=desk,
        token_issuer=token_issuer,
    )
