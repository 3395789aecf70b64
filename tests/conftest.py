from datetime import UTC, date, datetime, timedelta

import pytest

from app.config import Settings
from app.models.domain.calendar_domain import (
    BusinessHours,
    BusyInterval,
    CalendarEvent,
    EventDraft,
    ExternalEvent,
    parse_timestamp,
)
from app.services.calendar.provider import ProviderError
from app.services.calls.call_tracker import CallLifecycleTracker, CallRegistry
from app.services.scheduling.availability import AvailabilityOracle
from app.services.scheduling.booking import BookingOrchestrator
from app.services.scheduling.reservations import ReservationStore

# 2025-05-05 is a Monday; 09:00-17:00 America/Los_Angeles is 16:00Z-00:00Z
BOOKING_DAY = date(2025, 5, 5)
BUSINESS_HOURS = BusinessHours(timezone="America/Los_Angeles", open_hour=9, close_hour=17)


def utc(value: str) -> datetime:
    return parse_timestamp(value)


class FakeClock:
    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class FakeCalendarProvider:
    """In-memory calendar. Busy blocks and raw event dicts can be edited between calls."""

    def __init__(self):
        self.busy: list[BusyInterval] = []
        self.events: list[dict] = []
        self.created: list[EventDraft] = []
        self.busy_error: ProviderError | None = None
        self.events_error: ProviderError | None = None
        self.create_error: ProviderError | None = None
        self.healthy = True
        self.closed = False

    def add_busy(self, start: str, end: str) -> None:
        self.busy.append(BusyInterval(start=utc(start), end=utc(end)))

    async def get_busy_intervals(self, calendar_id, time_min, time_max):
        if self.busy_error:
            raise self.busy_error
        return [b for b in self.busy if b.overlaps(time_min, time_max)]

    async def list_events(self, calendar_id, time_min, time_max):
        if self.events_error:
            raise self.events_error
        return [CalendarEvent(item) for item in self.events]

    async def create_event(self, calendar_id, draft):
        if self.create_error:
            raise self.create_error
        self.created.append(draft)
        return ExternalEvent(
            id=f"evt-{len(self.created)}",
            start=draft.start,
            end=draft.end,
            html_link="https://calendar.google.com/event?eid=abc",
            meeting_link="https://meet.google.com/abc-defg-hij",
            summary=draft.summary,
            attendee_email=draft.attendee_email,
        )

    async def health_check(self):
        return {"healthy": self.healthy, "service": "fake"}

    async def close(self):
        self.closed = True


class FakeNotifier:
    def __init__(self):
        self.sent: list[dict] = []
        self.drained = False
        self.closed = False

    def dispatch(self, data):
        self.sent.append(data)

    async def drain(self):
        self.drained = True

    async def close(self):
        self.closed = True


class FakeCallService:
    def __init__(self, call_id: str = "call-123"):
        self.call_id = call_id
        self.calls: list[dict] = []

    async def start_call(self, from_number, to_number, agent_id, metadata):
        self.calls.append(
            {
                "from_number": from_number,
                "to_number": to_number,
                "agent_id": agent_id,
                "metadata": metadata,
            }
        )
        return self.call_id

    async def close(self):
        pass


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 5, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def store(clock):
    return ReservationStore(default_ttl_seconds=300, clock=clock)


@pytest.fixture
def provider():
    return FakeCalendarProvider()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def call_service():
    return FakeCallService()


@pytest.fixture
def oracle(provider):
    return AvailabilityOracle(provider, "primary", BUSINESS_HOURS)


@pytest.fixture
def tracker(notifier, call_service, clock):
    return CallLifecycleTracker(
        CallRegistry(),
        notifier,
        call_service=call_service,
        from_number="+15550000000",
        agent_id="agent-1",
        scheduling_link="https://calendly.com/acme/intro",
        clock=clock,
    )


@pytest.fixture
def orchestrator(store, oracle, provider, notifier, tracker):
    return BookingOrchestrator(store, oracle, provider, notifier, tracker=tracker)


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        GOOGLE_CALENDAR_ID="primary",
        GOOGLE_CALENDAR_ACCESS_TOKEN="test-token",
        BUSINESS_TIMEZONE="America/Los_Angeles",
        NOTIFICATION_WEBHOOK_URL=None,
        RETELL_API_KEY="retell-key",
        RETELL_FROM_NUMBER="+15550000000",
        RETELL_AGENT_ID="agent-1",
        MAINTENANCE_INTERVAL_SECONDS=3600,
    )
