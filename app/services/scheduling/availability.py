"""
Availability Oracle.

Computes which candidate slots are free against the provider's busy data.
The busy set is the union of the free/busy query and the events list for
the window, minus cancelled, owner-declined and transparent events.

A provider failure is always raised to the caller. There is no code path
that reports a slot as free without a definitive answer from the provider.
"""

import asyncio
from datetime import date, datetime, timedelta

from app.infrastructure.observability.logging import get_logger
from app.models.domain.calendar_domain import BusinessHours, BusyInterval, Slot, to_utc
from app.services.calendar.provider import CalendarProvider, ProviderConfigurationError

logger = get_logger(__name__)


class AvailabilityOracle:
    """Free-slot computation over a single configured calendar."""

    def __init__(
        self,
        provider: CalendarProvider,
        calendar_id: str,
        business_hours: BusinessHours,
        slot_duration_minutes: int = 30,
        granularity_minutes: int = 30,
        use_freebusy: bool = True,
    ):
        if slot_duration_minutes <= 0 or granularity_minutes <= 0:
            raise ValueError("Slot duration and granularity must be positive")
        self.provider = provider
        self.calendar_id = calendar_id
        self.business_hours = business_hours
        self.slot_duration_minutes = slot_duration_minutes
        self.granularity_minutes = granularity_minutes
        self.use_freebusy = use_freebusy

    async def list_busy_intervals(
        self, window_start: datetime, window_end: datetime
    ) -> list[BusyInterval]:
        """
        Busy blocks overlapping [window_start, window_end), sorted by start.

        Raises:
            ProviderError: If either provider query fails
        """
        if not self.calendar_id:
            raise ProviderConfigurationError("No calendar configured", error_code="no_calendar")

        window_start = to_utc(window_start)
        window_end = to_utc(window_end)

        if self.use_freebusy:
            events, freebusy = await asyncio.gather(
                self.provider.list_events(self.calendar_id, window_start, window_end),
                self.provider.get_busy_intervals(self.calendar_id, window_start, window_end),
            )
        else:
            events = await self.provider.list_events(self.calendar_id, window_start, window_end)
            freebusy = []

        busy = [
            event.to_busy_interval(self.business_hours.timezone)
            for event in events
            if event.blocks_time()
        ]
        skipped = len(events) - len(busy)
        busy.extend(freebusy)
        busy.sort(key=lambda interval: (interval.start, interval.end))

        logger.debug(
            "Busy intervals resolved",
            window_start=window_start.isoformat(),
            window_end=window_end.isoformat(),
            busy_count=len(busy),
            skipped_events=skipped,
        )
        return busy

    def candidate_slots(
        self,
        day: date,
        duration_minutes: int | None = None,
        granularity_minutes: int | None = None,
        business_hours: BusinessHours | None = None,
    ) -> list[Slot]:
        """All slots inside business hours on a local day, ignoring busy data."""
        duration = duration_minutes or self.slot_duration_minutes
        step = timedelta(minutes=granularity_minutes or self.granularity_minutes)
        open_at, close_at = (business_hours or self.business_hours).window(day)

        slots = []
        current = open_at
        while current < close_at:
            slot = Slot.from_start(current, duration)
            # Slots ending after close are excluded
            if slot.end > close_at:
                break
            slots.append(slot)
            current += step
        return slots

    async def compute_free_slots(
        self,
        day: date,
        duration_minutes: int | None = None,
        granularity_minutes: int | None = None,
        business_hours: BusinessHours | None = None,
    ) -> list[Slot]:
        """
        Ordered free slots for a local day.

        Raises:
            ProviderError: If busy data cannot be obtained
        """
        candidates = self.candidate_slots(day, duration_minutes, granularity_minutes, business_hours)
        if not candidates:
            return []

        busy = await self.list_busy_intervals(candidates[0].start, candidates[-1].end)
        free = [slot for slot in candidates if not _conflicts(slot, busy)]

        logger.info(
            "Free slots computed",
            day=day.isoformat(),
            candidates=len(candidates),
            free=len(free),
        )
        return free

    async def is_slot_free(self, slot: Slot) -> bool:
        """
        Check a single slot against current provider state.

        Raises:
            ProviderError: If busy data cannot be obtained
        """
        busy = await self.list_busy_intervals(slot.start, slot.end)
        conflict = next((interval for interval in busy if slot.conflicts_with(interval)), None)
        if conflict:
            logger.info(
                "Slot conflicts with busy interval",
                slot_key=slot.key,
                busy_start=conflict.start.isoformat(),
                busy_end=conflict.end.isoformat(),
                source=conflict.source,
            )
            return False
        return True

    def is_bookable(self, slot: Slot) -> bool:
        """
        True when the slot is one compute_free_slots could return: on the
        granularity grid, of the configured length, inside business hours.
        """
        local_day = slot.start.astimezone(self.business_hours.zone).date()
        return slot in self.candidate_slots(local_day)

    def build_slot(self, start: datetime, end: datetime | None = None) -> Slot:
        """Slot starting at `start`; default length is the configured duration."""
        if end is None:
            return Slot.from_start(start, self.slot_duration_minutes)
        slot = Slot(start=to_utc(start).replace(microsecond=0), end=to_utc(end))
        if slot.end <= slot.start:
            raise ValueError("Slot end must be after its start")
        return slot


def _conflicts(slot: Slot, busy: list[BusyInterval]) -> bool:
    return any(slot.conflicts_with(interval) for interval in busy)
