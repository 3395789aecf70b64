"""
Google Calendar API client implementing the calendar provider capability.
Handles free/busy queries, event listing and event creation with retry,
error mapping and timeout handling.
Low-level Calendar API client
"""

import asyncio
import uuid
from urllib.parse import quote
from datetime import datetime
from typing import Any

import httpx

from app.infrastructure.observability.logging import get_logger
from app.models.domain.calendar_domain import (
    BusyInterval,
    CalendarEvent,
    EventDraft,
    ExternalEvent,
    parse_timestamp,
    to_utc,
)
from app.services.calendar.credentials import GoogleTokenSource
from app.services.calendar.provider import (
    ProviderConflictError,
    ProviderError,
    ProviderPermissionError,
)

logger = get_logger(__name__)

# Google Calendar API configuration
CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 30  # seconds (calendar operations can be slower)
MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
MAX_EVENT_PAGES = 10

# Reminders attached to booked appointments
DEFAULT_REMINDERS = {
    "useDefault": False,
    "overrides": [
        {"method": "email", "minutes": 24 * 60},
        {"method": "email", "minutes": 60},
        {"method": "popup", "minutes": 10},
    ],
}


class GoogleCalendarError(ProviderError):
    """Google Calendar API error that is neither a permission nor a conflict error."""


class GoogleCalendarProvider:
    """
    Calendar provider backed by the Google Calendar API.

    Reads (free/busy, events) are retried with backoff on throttling and
    server errors; event creation is never retried so a slow success cannot
    turn into a duplicate booking.
    """

    def __init__(
        self,
        token_source: GoogleTokenSource,
        client: httpx.AsyncClient | None = None,
        backoff_factor: float = BACKOFF_FACTOR,
    ):
        self._token_source = token_source
        self._client = client or self._create_client()
        self._backoff_factor = backoff_factor

    def _create_client(self) -> httpx.AsyncClient:
        """Create async HTTP client for Calendar API."""
        timeout = httpx.Timeout(REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _request_with_retry(
        self, method: str, url: str, retry: bool = True, **kwargs
    ) -> httpx.Response:
        """Execute an HTTP request with retry and backoff."""
        attempts = MAX_RETRIES if retry else 1
        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < attempts:
                    backoff = self._backoff_factor * (2 ** (attempt - 1))
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
                if attempt >= attempts:
                    raise
                backoff = self._backoff_factor * (2 ** (attempt - 1))
                logger.debug(
                    "Calendar API request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise RuntimeError("Calendar API retry loop exhausted")

    async def _get_auth_headers(self) -> dict:
        """Get authorization headers for Calendar API requests."""
        access_token = await self._token_source.get_token()
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Handle and validate Calendar API response.

        Args:
            response: HTTP response from Calendar API
            operation: Operation name for logging

        Returns:
            dict: Parsed response data

        Raises:
            ProviderPermissionError: On 401/403
            ProviderConflictError: On 409
            GoogleCalendarError: On any other failure
        """
        logger.debug(
            f"Calendar API {operation} response",
            status_code=response.status_code,
            response_size=len(response.text) if response.text else 0,
        )

        if response.is_success:
            try:
                return response.json() if response.text else {}
            except ValueError as e:
                logger.error(f"Failed to parse Calendar API {operation} response", error=str(e))
                raise GoogleCalendarError(f"Invalid response format: {e}") from e

        try:
            error_data = response.json() if response.text else {}
        except ValueError:
            logger.error(
                f"Calendar API {operation} failed with non-JSON response",
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
            )
            error_data = {}

        error_info = error_data.get("error", {}) if isinstance(error_data, dict) else {}
        if not isinstance(error_info, dict):
            error_info = {"message": str(error_info)}
        error_message = error_info.get("message", f"HTTP {response.status_code}")

        logger.error(
            f"Calendar API {operation} failed",
            status_code=response.status_code,
            error_message=error_message,
        )

        user_message = self._map_calendar_error(response.status_code, error_message)
        error_class = {
            401: ProviderPermissionError,
            403: ProviderPermissionError,
            409: ProviderConflictError,
        }.get(response.status_code, GoogleCalendarError)

        raise error_class(
            user_message,
            error_code=str(response.status_code),
            status_code=response.status_code,
            response_data=error_data,
        )

    def _map_calendar_error(self, status_code: int, error_message: str) -> str:
        """Map Calendar API status codes to readable messages."""
        error_mappings = {
            400: "Invalid calendar request format.",
            401: "Calendar authorization expired or invalid.",
            403: "Calendar access denied. Share the calendar with the service account.",
            404: "Calendar or event not found.",
            409: "The requested time conflicts with an existing event.",
            429: "Too many calendar requests. Please try again later.",
            500: "Google Calendar service temporarily unavailable.",
        }

        return error_mappings.get(status_code, f"Calendar error: {error_message}")

    async def get_busy_intervals(
        self, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> list[BusyInterval]:
        """
        Query free/busy blocks for one calendar.

        Per-calendar errors in the response (e.g. notFound) are failures:
        an empty busy list is only trusted when Google reports no errors.

        Raises:
            ProviderError: If the query fails in any way
        """
        try:
            url = f"{CALENDAR_API_BASE_URL}/freeBusy"
            headers = await self._get_auth_headers()
            query_data = {
                "timeMin": to_utc(time_min).isoformat(),
                "timeMax": to_utc(time_max).isoformat(),
                "items": [{"id": calendar_id}],
            }

            logger.info(
                "Querying free/busy",
                calendar_id=calendar_id,
                time_min=query_data["timeMin"],
                time_max=query_data["timeMax"],
            )

            response = await self._request_with_retry("POST", url, headers=headers, json=query_data)
            data = self._handle_api_response(response, "free_busy")

            calendar_data = data.get("calendars", {}).get(calendar_id)
            if calendar_data is None:
                raise GoogleCalendarError(
                    "Free/busy response did not include the calendar",
                    error_code="calendar_missing",
                )

            errors = calendar_data.get("errors", [])
            if errors:
                reason = errors[0].get("reason", "unknown")
                raise GoogleCalendarError(
                    f"Free/busy unavailable for calendar: {reason}",
                    error_code=reason,
                    response_data=calendar_data,
                )

            busy = [
                BusyInterval(
                    start=parse_timestamp(block["start"]),
                    end=parse_timestamp(block["end"]),
                    source="freebusy",
                )
                for block in calendar_data.get("busy", [])
            ]

            logger.info("Free/busy query completed", busy_count=len(busy))
            return busy

        except ProviderError:
            raise
        except Exception as e:
            logger.error("Unexpected error querying free/busy", error=str(e))
            raise GoogleCalendarError(f"Failed to query free/busy: {e}") from e

    async def list_events(
        self, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> list[CalendarEvent]:
        """
        List events overlapping a window, expanding recurring events.

        Raises:
            ProviderError: If listing events fails
        """
        try:
            url = f"{CALENDAR_API_BASE_URL}/calendars/{quote(calendar_id, safe='@')}/events"
            headers = await self._get_auth_headers()

            params: dict[str, Any] = {
                "timeMin": to_utc(time_min).isoformat(),
                "timeMax": to_utc(time_max).isoformat(),
                "singleEvents": "true",
                "orderBy": "startTime",
                "maxResults": 250,
            }

            logger.info(
                "Listing calendar events",
                calendar_id=calendar_id,
                time_min=params["timeMin"],
                time_max=params["timeMax"],
            )

            events: list[CalendarEvent] = []
            for _ in range(MAX_EVENT_PAGES):
                response = await self._request_with_retry(
                    "GET", url, headers=headers, params=params
                )
                data = self._handle_api_response(response, "list_events")
                time_zone = data.get("timeZone")
                events.extend(CalendarEvent(item, time_zone) for item in data.get("items", []))

                page_token = data.get("nextPageToken")
                if not page_token:
                    break
                params["pageToken"] = page_token
            else:
                # A partial list could report booked time as free
                logger.error(
                    "Event listing exceeded page limit", calendar_id=calendar_id, pages=MAX_EVENT_PAGES
                )
                raise GoogleCalendarError(
                    f"Event listing exceeded {MAX_EVENT_PAGES} pages", error_code="too_many_events"
                )

            logger.info("Events listed successfully", calendar_id=calendar_id, event_count=len(events))
            return events

        except ProviderError:
            raise
        except Exception as e:
            logger.error("Unexpected error listing events", calendar_id=calendar_id, error=str(e))
            raise GoogleCalendarError(f"Failed to list events: {e}") from e

    async def create_event(self, calendar_id: str, draft: EventDraft) -> ExternalEvent:
        """
        Create the appointment with a Meet link and reminders.

        Raises:
            ProviderPermissionError: If the identity cannot write the calendar
            ProviderConflictError: If Google reports a scheduling conflict
            ProviderError: On any other failure, including timeouts
        """
        try:
            url = f"{CALENDAR_API_BASE_URL}/calendars/{quote(calendar_id, safe='@')}/events"
            headers = await self._get_auth_headers()

            description = f"Meeting with {draft.attendee_name}"
            if draft.description:
                description = f"{description}\n\n{draft.description}"

            event_data = {
                "summary": draft.summary,
                "description": description,
                "start": {"dateTime": to_utc(draft.start).isoformat(), "timeZone": draft.time_zone},
                "end": {"dateTime": to_utc(draft.end).isoformat(), "timeZone": draft.time_zone},
                "attendees": [{"email": draft.attendee_email, "displayName": draft.attendee_name}],
                "conferenceData": {
                    "createRequest": {
                        "requestId": str(uuid.uuid4()),
                        "conferenceSolutionKey": {"type": "hangoutsMeet"},
                    }
                },
                "reminders": DEFAULT_REMINDERS,
            }
            params = {"conferenceDataVersion": 1, "sendUpdates": "all"}

            logger.info(
                "Creating calendar event",
                summary=draft.summary,
                start_time=event_data["start"]["dateTime"],
                calendar_id=calendar_id,
            )

            response = await self._request_with_retry(
                "POST", url, retry=False, headers=headers, params=params, json=event_data
            )
            data = self._handle_api_response(response, "create_event")

            event = ExternalEvent.from_google(data)
            logger.info("Event created successfully", event_id=event.id, summary=draft.summary)
            return event

        except ProviderError:
            raise
        except Exception as e:
            logger.error("Unexpected error creating event", summary=draft.summary, error=str(e))
            raise GoogleCalendarError(f"Failed to create event: {e}") from e

    async def health_check(self) -> dict[str, Any]:
        """
        Check Google Calendar service health.

        Returns:
            Dict: Health status and configuration
        """
        health_data = {
            "healthy": True,
            "service": "google_calendar",
            "api_base_url": CALENDAR_API_BASE_URL,
            "request_timeout": REQUEST_TIMEOUT,
            "max_retries": MAX_RETRIES,
        }

        try:
            await self._token_source.get_token()
            health_data["credentials"] = "ok"
        except ProviderError as e:
            health_data["healthy"] = False
            health_data["credentials"] = "error"
            health_data["error"] = str(e)
            return health_data

        try:
            response = await self._client.request("HEAD", CALENDAR_API_BASE_URL, timeout=5.0)
            health_data["api_connectivity"] = (
                "ok" if response.status_code in [200, 401, 403, 404] else f"error_{response.status_code}"
            )
        except httpx.RequestError as e:
            health_data["api_connectivity"] = f"error_{type(e).__name__}"
            health_data["healthy"] = False

        return health_data
