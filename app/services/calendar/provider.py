"""
Calendar provider capability.
The scheduling core only talks to the calendar through this protocol, so any
Google-like or Calendly-like backend can sit behind it.
"""

from datetime import datetime
from typing import Any, Protocol

from app.models.domain.calendar_domain import (
    BusyInterval,
    CalendarEvent,
    EventDraft,
    ExternalEvent,
)


class ProviderError(Exception):
    """The calendar provider rejected or failed a call."""

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


class ProviderConfigurationError(ProviderError):
    """Provider credentials or calendar id are missing or unusable."""


class ProviderPermissionError(ProviderError):
    """The configured identity may not read or write the calendar."""


class ProviderConflictError(ProviderError):
    """The provider refused the write because of a scheduling conflict."""


class CalendarProvider(Protocol):
    async def get_busy_intervals(
        self, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> list[BusyInterval]: ...

    async def list_events(
        self, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> list[CalendarEvent]: ...

    async def create_event(self, calendar_id: str, draft: EventDraft) -> ExternalEvent: ...

    async def health_check(self) -> dict[str, Any]: ...

    async def close(self) -> None: ...
