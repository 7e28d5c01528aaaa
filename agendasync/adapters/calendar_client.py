"""
Google Calendar API client for reading and writing calendar events.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Protocol
from urllib.parse import quote

import pendulum
import requests
from pendulum import DateTime

from ..config import CALENDAR_READ_SCOPE, CALENDAR_WRITE_SCOPE, GoogleConfig
from ..domain.exceptions import UpstreamQueryError, UpstreamWriteError
from ..domain.models import AccessToken, EventDraft, ExternalEvent

logger = logging.getLogger(__name__)


class TokenProvider(Protocol):
    """Anything that can hand out bearer tokens per scope."""

    def issue_token(self, scope: str) -> AccessToken:
        """Return a valid token for ``scope``."""


class _TransientError(Exception):
    """Internal marker for read failures worth another attempt."""


class GoogleCalendarClient:
    """
    Client for Google Calendar event operations.

    Reads use ``singleEvents=true`` so that recurring series arrive already
    expanded into individual instances. Creating an event is not idempotent
    and is therefore never retried here.
    """

    GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
    PAGE_SIZE = 250

    def __init__(
        self,
        token_provider: TokenProvider,
        api_base: str = GOOGLE_CALENDAR_API,
        read_scope: str = CALENDAR_READ_SCOPE,
        write_scope: str = CALENDAR_WRITE_SCOPE,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        max_read_attempts: int = 3,
        retry_delay_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the calendar client.

        Args:
            token_provider: Source of bearer tokens (normally the token issuer)
            api_base: Calendar API base URL
            read_scope: Scope requested for listing events
            write_scope: Scope requested for creating events
            session: Optional requests session
            timeout: Timeout in seconds for each HTTP call
            max_read_attempts: Attempts for list calls on transient failures
        """
        self.token_provider = token_provider
        self.api_base = api_base.rstrip("/")
        self.read_scope = read_scope
        self.write_scope = write_scope
        self.timeout = timeout
        self.max_read_attempts = max_read_attempts
        self.retry_delay_seconds = retry_delay_seconds

        self._session = session or requests.Session()
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: GoogleConfig,
        token_provider: TokenProvider,
        session: Optional[requests.Session] = None,
    ) -> "GoogleCalendarClient":
        return cls(
            token_provider=token_provider,
            api_base=config.api_base,
            read_scope=config.read_scope,
            write_scope=config.write_scope,
            session=session,
            timeout=config.request_timeout_seconds,
            max_read_attempts=config.max_attempts,
        )

    def list_events(
        self,
        calendar_id: str,
        start_time: DateTime,
        end_time: DateTime,
    ) -> List[ExternalEvent]:
        """
        List single event instances intersecting a time window.

        Args:
            calendar_id: Calendar to read
            start_time: Window start (events ending after it are returned)
            end_time: Window end (events starting before it are returned)

        Returns:
            Events in start order

        Raises:
            AuthConfigError, AuthExchangeError: If no token can be obtained
            UpstreamQueryError: If the API call fails or returns malformed data
        """
        token = self.token_provider.issue_token(self.read_scope)
        url = self._events_url(calendar_id)
        params: Dict[str, Any] = {
            "timeMin": start_time.in_timezone("UTC").to_iso8601_string(),
            "timeMax": end_time.in_timezone("UTC").to_iso8601_string(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": self.PAGE_SIZE,
        }

        events: List[ExternalEvent] = []
        while True:
            data = self._get_with_retry(url, params, token)
            items = data.get("items") or []
            if not isinstance(items, list):
                raise UpstreamQueryError("Calendar returned a malformed event list")
            for item in items:
                if not isinstance(item, dict):
                    raise UpstreamQueryError(f"Calendar returned a malformed event: {item!r}")
                if item.get("status") == "cancelled":
                    continue
                events.append(parse_event(item))

            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params = {**params, "pageToken": page_token}

        logger.debug(
            "Listed %d events from %s between %s and %s",
            len(events),
            calendar_id,
            params["timeMin"],
            params["timeMax"],
        )
        return events

    def create_event(self, calendar_id: str, draft: EventDraft) -> str:
        """
        Create an event on the calendar.

        Returns:
            Identifier of the created event

        Raises:
            AuthConfigError, AuthExchangeError: If no token can be obtained
            UpstreamWriteError: If the API call fails; the call is not retried
        """
        token = self.token_provider.issue_token(self.write_scope)

        try:
            response = self._session.post(
                self._events_url(calendar_id),
                headers=self._headers(token),
                json=draft.to_payload(),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise UpstreamWriteError(f"Failed to create calendar event: {exc}") from exc

        if response.status_code >= 400:
            raise UpstreamWriteError(
                f"Calendar rejected the event (HTTP {response.status_code}): "
                f"{_api_error_message(response)}"
            )

        try:
            event_id = response.json().get("id")
        except (ValueError, AttributeError) as exc:
            raise UpstreamWriteError(f"Calendar returned an invalid event payload: {exc}") from exc

        if not event_id:
            raise UpstreamWriteError("Calendar response did not include an event id")

        logger.info("Created calendar event %s on %s", event_id, calendar_id)
        return event_id

    def test_connection(self, calendar_id: str) -> Dict[str, Any]:
        """
        Test the credentials by fetching the calendar's metadata.

        Raises:
            UpstreamQueryError: If the calendar cannot be read
        """
        token = self.token_provider.issue_token(self.read_scope)
        url = f"{self.api_base}/calendars/{quote(calendar_id, safe='')}"
        return self._get_with_retry(url, {}, token)

    def _get_with_retry(
        self,
        url: str,
        params: Dict[str, Any],
        token: AccessToken,
    ) -> Dict[str, Any]:
        for attempt in range(1, self.max_read_attempts + 1):
            try:
                return self._get(url, params, token)
            except _TransientError as exc:
                if attempt == self.max_read_attempts:
                    raise UpstreamQueryError(
                        f"Calendar query failed after {attempt} attempts: {exc}"
                    ) from exc
                logger.warning(
                    "Calendar query attempt %d/%d failed (%s); retrying",
                    attempt,
                    self.max_read_attempts,
                    exc,
                )
                self._sleep(self.retry_delay_seconds * attempt)

        raise UpstreamQueryError("Calendar query was not attempted")  # pragma: no cover

    def _get(self, url: str, params: Dict[str, Any], token: AccessToken) -> Dict[str, Any]:
        try:
            response = self._session.get(
                url,
                headers=self._headers(token),
                params=params,
                timeout=self.timeout,
            )
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
            raise _TransientError(str(exc)) from exc
        except requests.exceptions.RequestException as exc:
            raise UpstreamQueryError(f"Failed to query calendar: {exc}") from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise _TransientError(f"HTTP {response.status_code}: {_api_error_message(response)}")
        if response.status_code >= 400:
            raise UpstreamQueryError(
                f"Calendar query rejected (HTTP {response.status_code}): "
                f"{_api_error_message(response)}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamQueryError(f"Calendar returned invalid JSON: {exc}") from exc

        if not isinstance(data, dict):
            raise UpstreamQueryError("Calendar returned an unexpected payload")
        return data

    def _events_url(self, calendar_id: str) -> str:
        return f"{self.api_base}/calendars/{quote(calendar_id, safe='')}/events"

    @staticmethod
    def _headers(token: AccessToken) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token.value}",
            "Content-Type": "application/json",
        }


def parse_event(item: Dict[str, Any]) -> ExternalEvent:
    """
    Parse an event resource into our domain model.

    Event format:
    {
        "id": "abc123",
        "summary": "...",
        "start": {"dateTime": "2026-02-09T08:00:00-05:00"} or {"date": "2026-02-09"},
        "end":   {"dateTime": "2026-02-09T09:00:00-05:00"} or {"date": "2026-02-10"}
    }

    Raises:
        UpstreamQueryError: If the resource lacks parseable start/end values
    """
    try:
        start = item["start"]
        end = item["end"]
        if "dateTime" in start:
            # Keep the offset the calendar rendered the event in
            return ExternalEvent(
                id=item.get("id", ""),
                summary=item.get("summary", ""),
                start=pendulum.parse(start["dateTime"]),
                end=pendulum.parse(end["dateTime"]),
            )
        return ExternalEvent(
            id=item.get("id", ""),
            summary=item.get("summary", ""),
            start=pendulum.parse(start["date"]).date(),
            end=pendulum.parse(end["date"]).date(),
            all_day=True,
        )
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        event_id = item.get("id") if isinstance(item, dict) else None
        raise UpstreamQueryError(f"Malformed calendar event {event_id!r}: {exc}") from exc


def _api_error_message(response: requests.Response) -> str:
    """Extract ``error.message`` from a Google API error body."""
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return error.get("message", str(error))
    return str(error or payload)
