"""
Google Calendar API client for match meetings.
Creates events with Google Meet links on the shared CivicMatch calendar and
reads them back for ICS downloads.
"""

import asyncio
import time
from datetime import datetime
from typing import Protocol
from urllib.parse import quote

import httpx

from civicmatch.config import settings
from civicmatch.infrastructure.observability.logging import get_logger
from civicmatch.models.domain.calendar_domain import CalendarEvent

logger = get_logger(__name__)

CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 30  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class AccessTokenProvider(Protocol):
    async def get_access_token(self) -> str: ...


class GoogleCalendarError(Exception):
    """Custom exception for Google Calendar API errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data or {}


class GoogleCalendarService:
    """
    Service for Google Calendar API operations on one calendar.

    Consecutive calls are spaced by ``min_call_interval`` seconds to stay
    well under the Calendar API's per-user quota.
    """

    def __init__(
        self,
        token_provider: AccessTokenProvider,
        calendar_id: str | None = None,
        min_call_interval: float | None = None,
        backoff_factor: float = BACKOFF_FACTOR,
    ):
        self.token_provider = token_provider
        self.calendar_id = calendar_id or settings.GOOGLE_CALENDAR_ID
        self.min_call_interval = (
            settings.CALENDAR_CALL_INTERVAL_SECONDS
            if min_call_interval is None
            else min_call_interval
        )
        self.backoff_factor = backoff_factor
        self._last_call_at: float | None = None
        self._client = self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        """Create async HTTP client for Calendar API."""
        timeout = httpx.Timeout(REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=5, max_connections=10)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    @property
    def _events_url(self) -> str:
        return f"{CALENDAR_API_BASE_URL}/calendars/{quote(self.calendar_id, safe='')}/events"

    async def _pace(self) -> None:
        if self._last_call_at is not None and self.min_call_interval > 0:
            wait = self.min_call_interval - (time.monotonic() - self._last_call_at)
            if wait > 0:
                await asyncio.sleep(wait)
        self._last_call_at = time.monotonic()

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with retry and backoff."""
        await self._pace()
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    backoff = self.backoff_factor * (2 ** (attempt - 1))
                    logger.debug(
                        "Calendar API retrying request",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise GoogleCalendarError(f"Calendar API request failed: {e}") from e
                backoff = self.backoff_factor * (2 ** (attempt - 1))
                logger.debug(
                    "Calendar API request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise GoogleCalendarError("Calendar API retry loop exhausted")

    async def _get_auth_headers(self) -> dict:
        access_token = await self.token_provider.get_access_token()
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Handle and validate Calendar API response.

        Raises:
            GoogleCalendarError: If response contains errors
        """
        if response.is_success:
            try:
                return response.json() if response.text else {}
            except ValueError as e:
                logger.error("Failed to parse Calendar API response", operation=operation)
                raise GoogleCalendarError(f"Invalid response format: {e}") from e

        try:
            error_data = response.json() if response.text else {}
        except ValueError:
            logger.error(
                "Calendar API failed with non-JSON response",
                operation=operation,
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
            )
            raise GoogleCalendarError(
                f"Calendar API error (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from None

        error_info = error_data.get("error", {}) if isinstance(error_data, dict) else {}
        error_code = str(error_info.get("code", response.status_code))
        error_message = error_info.get("message", "Unknown Calendar API error")

        logger.error(
            "Calendar API request failed",
            operation=operation,
            status_code=response.status_code,
            error_code=error_code,
            error_message=error_message,
        )
        raise GoogleCalendarError(
            self._map_calendar_error(error_code, error_message),
            error_code=error_code,
            status_code=response.status_code,
            response_data=error_data,
        )

    def _map_calendar_error(self, error_code: str, error_message: str) -> str:
        """Map Calendar API error codes to readable messages."""
        error_mappings = {
            "400": "Invalid calendar request format.",
            "401": "Calendar authorization failed. Check the service account.",
            "403": "Calendar access denied. Share the calendar with the service account.",
            "404": "Calendar or event not found.",
            "429": "Too many calendar requests. Please try again later.",
            "500": "Google Calendar service temporarily unavailable.",
        }
        return error_mappings.get(error_code, f"Calendar error: {error_message}")

    async def create_meeting_event(
        self,
        summary: str,
        description: str,
        start_time: datetime,
        end_time: datetime,
        attendees: list[str],
        timezone_str: str,
        request_id: str,
    ) -> CalendarEvent:
        """
        Create an event with a Google Meet conference and invite the attendees.

        Args:
            summary: Event title
            description: Event description
            start_time: Timezone-aware start
            end_time: Timezone-aware end
            attendees: Attendee email addresses
            timezone_str: IANA timezone shown to attendees
            request_id: Idempotency key for the conference create request

        Returns:
            CalendarEvent: Created event including the Meet link

        Raises:
            GoogleCalendarError: If creating the event fails
        """
        event_data = {
            "summary": summary,
            "description": description,
            "start": {"dateTime": start_time.isoformat(), "timeZone": timezone_str},
            "end": {"dateTime": end_time.isoformat(), "timeZone": timezone_str},
            "attendees": [{"email": email} for email in attendees],
            "conferenceData": {
                "createRequest": {
                    "requestId": request_id,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "email", "minutes": 24 * 60},
                    {"method": "popup", "minutes": 60},
                ],
            },
            "guestsCanModify": True,
            "guestsCanInviteOthers": False,
            "guestsCanSeeOtherGuests": True,
        }

        logger.info(
            "Creating calendar event",
            summary=summary,
            start_time=start_time.isoformat(),
            attendees_count=len(attendees),
        )

        headers = await self._get_auth_headers()
        response = await self._request_with_retry(
            "POST",
            self._events_url,
            headers=headers,
            params={"conferenceDataVersion": 1, "sendUpdates": "all"},
            json=event_data,
        )
        data = self._handle_api_response(response, "create_event")

        event = CalendarEvent(data)
        logger.info("Event created successfully", event_id=event.id, has_meet_link=bool(event.meet_url))
        return event

    async def get_event(self, event_id: str) -> CalendarEvent | None:
        """
        Get a specific event by ID.

        Returns:
            CalendarEvent, or None when the event does not exist

        Raises:
            GoogleCalendarError: For any other API failure
        """
        headers = await self._get_auth_headers()
        url = f"{self._events_url}/{quote(event_id, safe='')}"
        response = await self._request_with_retry("GET", url, headers=headers)
        if response.status_code in (404, 410):
            logger.info("Calendar event not found", event_id=event_id)
            return None

        data = self._handle_api_response(response, "get_event")
        return CalendarEvent(data)
