# app/models/domain/calendar_domain.py
"""
Calendar Domain Models
Value types for slots, busy intervals and provider events.
Slots are never stored; they are derived from a day, a duration and a granularity.
"""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

SLOT_KEY_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Raises:
        ValueError: If the string is not a valid ISO-8601 timestamp
    """
    if not value or not isinstance(value, str):
        raise ValueError("Timestamp is required")
    return to_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))


def slot_key(start: datetime) -> str:
    """Canonical slot identity: UTC start instant, second precision, Z suffix."""
    return to_utc(start).replace(microsecond=0).strftime(SLOT_KEY_FORMAT)


@dataclass(frozen=True)
class BusyInterval:
    """Half-open busy block [start, end) reported by the provider."""

    start: datetime
    end: datetime
    source: str = "freebusy"

    def overlaps(self, start: datetime, end: datetime) -> bool:
        # Touching boundaries do not conflict
        return start < self.end and end > self.start

    def to_dict(self) -> dict[str, str]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "source": self.source,
        }


@dataclass(frozen=True)
class Slot:
    """Half-open candidate meeting interval [start, end)."""

    start: datetime
    end: datetime

    @classmethod
    def from_start(cls, start: datetime, duration_minutes: int) -> "Slot":
        start_utc = to_utc(start).replace(microsecond=0)
        return cls(start=start_utc, end=start_utc + timedelta(minutes=duration_minutes))

    @property
    def key(self) -> str:
        return slot_key(self.start)

    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() / 60)

    def conflicts_with(self, busy: BusyInterval) -> bool:
        return busy.overlaps(self.start, self.end)

    def to_dict(self, timezone_str: str = "UTC") -> dict[str, Any]:
        """Convert to dictionary for API responses, with local display fields."""
        local_start = self.start.astimezone(ZoneInfo(timezone_str))
        return {
            "slotKey": self.key,
            "startTime": self.start.isoformat().replace("+00:00", "Z"),
            "endTime": self.end.isoformat().replace("+00:00", "Z"),
            "displayTime": local_start.strftime("%I:%M %p").lstrip("0"),
            "date": local_start.date().isoformat(),
            "durationMinutes": self.duration_minutes(),
        }


@dataclass(frozen=True)
class BusinessHours:
    """Daily open/close hours in a named timezone."""

    timezone: str = "UTC"
    open_hour: int = 9
    close_hour: int = 17

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def window(self, day: date) -> tuple[datetime, datetime]:
        """UTC instants of opening and closing on the given local day."""
        open_local = datetime.combine(day, time(hour=self.open_hour), tzinfo=self.zone)
        close_local = datetime.combine(day, time(hour=self.close_hour), tzinfo=self.zone)
        return open_local.astimezone(UTC), close_local.astimezone(UTC)


class CalendarEvent:
    """Event as returned by the events list, with the checks the oracle needs."""

    def __init__(self, data: dict, time_zone: str | None = None):
        self.id = data.get("id")
        self.summary = data.get("summary", "")
        self.status = data.get("status", "confirmed")
        self.transparency = data.get("transparency", "opaque")
        self.time_zone = time_zone
        self.start_time = self._parse_datetime(data.get("start", {}))
        self.end_time = self._parse_datetime(data.get("end", {}))
        self.attendees = data.get("attendees", [])
        self.raw_data = data

    def _parse_datetime(self, dt_data: dict, zone: str | None = None) -> datetime | None:
        """Parse datetime from Google Calendar format."""
        if not dt_data:
            return None

        # All-day events (date only) run midnight to midnight in the calendar's zone
        if "date" in dt_data:
            try:
                day = date.fromisoformat(dt_data["date"])
            except ValueError:
                return None
            tz = ZoneInfo(zone or self.time_zone or "UTC")
            return datetime.combine(day, time.min, tzinfo=tz).astimezone(UTC)

        if "dateTime" in dt_data:
            try:
                return parse_timestamp(dt_data["dateTime"])
            except ValueError:
                return None

        return None

    def is_all_day(self) -> bool:
        return "date" in self.raw_data.get("start", {})

    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    def is_declined_by_owner(self) -> bool:
        """True when the calendar owner's own attendee entry is declined."""
        for attendee in self.attendees:
            if attendee.get("self") and attendee.get("responseStatus") == "declined":
                return True
        return False

    def blocks_time(self) -> bool:
        """Check if this event should count as busy."""
        if not self.start_time or not self.end_time:
            return False
        if self.is_cancelled() or self.is_declined_by_owner():
            return False
        return self.transparency != "transparent"

    def to_busy_interval(self, default_zone: str | None = None) -> BusyInterval:
        """
        Busy block for this event. All-day events without a calendar zone of
        their own are resolved in default_zone.
        """
        if self.is_all_day() and not self.time_zone and default_zone:
            start = self._parse_datetime(self.raw_data.get("start", {}), default_zone)
            end = self._parse_datetime(self.raw_data.get("end", {}), default_zone)
            return BusyInterval(start=start, end=end, source="events")
        return BusyInterval(start=self.start_time, end=self.end_time, source="events")


@dataclass
class Attendee:
    """Person the appointment is booked for."""

    name: str
    email: str
    phone: str | None = None


@dataclass
class EventDraft:
    """Everything the provider needs to create an event."""

    summary: str
    start: datetime
    end: datetime
    time_zone: str
    attendee_email: str
    attendee_name: str = "Guest"
    description: str = ""


@dataclass
class ExternalEvent:
    """Booked appointment as represented by the provider."""

    id: str
    start: datetime
    end: datetime
    html_link: str | None = None
    meeting_link: str | None = None
    summary: str = ""
    attendee_email: str | None = None
    raw_data: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_google(cls, data: dict) -> "ExternalEvent":
        """
        Build from a Google Calendar insert response.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        event_id = data.get("id")
        if not event_id:
            raise ValueError("Created event has no id")

        start = data.get("start", {}).get("dateTime")
        end = data.get("end", {}).get("dateTime")
        if not start or not end:
            raise ValueError("Created event has no start/end dateTime")

        entry_points = (data.get("conferenceData") or {}).get("entryPoints") or []
        meeting_link = entry_points[0].get("uri") if entry_points else data.get("hangoutLink")

        attendees = data.get("attendees") or []
        attendee_email = attendees[0].get("email") if attendees else None

        return cls(
            id=event_id,
            start=parse_timestamp(start),
            end=parse_timestamp(end),
            html_link=data.get("htmlLink"),
            meeting_link=meeting_link,
            summary=data.get("summary", ""),
            attendee_email=attendee_email,
            raw_data=data,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "eventId": self.id,
            "startTime": self.start.isoformat(),
            "endTime": self.end.isoformat(),
            "eventLink": self.html_link,
            "meetingLink": self.meeting_link or "",
            "summary": self.summary,
        }
