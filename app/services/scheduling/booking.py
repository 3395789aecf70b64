"""
Booking Orchestrator.

Sequences a booking: acquire the reservation, re-check the slot against the
provider, confirm (consume) the reservation, create the external event, then
notify downstream in the background.

Every failure reaches the caller as a BookingError subclass; raw provider
exceptions never leave this module.
"""

from dataclasses import dataclass
from datetime import date, datetime

from app.infrastructure.observability.logging import get_logger
from app.models.domain.calendar_domain import (
    Attendee,
    EventDraft,
    ExternalEvent,
    Slot,
    parse_timestamp,
    slot_key,
)
from app.services.calendar.provider import (
    CalendarProvider,
    ProviderConfigurationError,
    ProviderConflictError,
    ProviderError,
)
from app.services.calls.call_tracker import CallLifecycleTracker
from app.services.notifications.webhook_notifier import WebhookNotifier
from app.services.scheduling.availability import AvailabilityOracle
from app.services.scheduling.reservations import Reservation, ReservationStore

logger = get_logger(__name__)


class BookingError(Exception):
    """Base class for booking failures, carrying the HTTP category."""

    status_code = 500
    error_code = "booking_error"

    def __init__(self, message: str, slot_key: str | None = None):
        super().__init__(message)
        self.message = message
        self.slot_key = slot_key


class InvalidBookingInput(BookingError):
    status_code = 400
    error_code = "invalid_input"


class ReservationNotFoundError(BookingError):
    status_code = 404
    error_code = "reservation_not_found"


class SlotTakenError(BookingError):
    status_code = 409
    error_code = "slot_taken"


class SlotNoLongerAvailableError(BookingError):
    status_code = 409
    error_code = "slot_unavailable"


class ReservationExpiredError(BookingError):
    status_code = 409
    error_code = "reservation_expired"


class BookingProviderError(BookingError):
    status_code = 500
    error_code = "provider_error"

    @classmethod
    def from_provider(cls, error: ProviderError, slot_key: str | None = None) -> "BookingProviderError":
        if isinstance(error, ProviderConfigurationError):
            message = f"Calendar is not configured: {error}"
        else:
            message = f"Calendar provider error: {error}"
        return cls(message, slot_key=slot_key)


@dataclass
class SlotCheck:
    slot: Slot
    free: bool
    held: bool

    @property
    def available(self) -> bool:
        return self.free and not self.held


def normalize_slot_key(value: str) -> str:
    """Canonical slot key for any ISO-8601 start timestamp."""
    try:
        return slot_key(parse_timestamp(value))
    except (TypeError, ValueError) as e:
        raise InvalidBookingInput(f"Invalid slot time: {value}") from e


class BookingOrchestrator:
    """Coordinates the reservation table, the oracle and the provider for one calendar."""

    def __init__(
        self,
        store: ReservationStore,
        oracle: AvailabilityOracle,
        provider: CalendarProvider,
        notifier: WebhookNotifier,
        tracker: CallLifecycleTracker | None = None,
        summary: str = "Consultation",
    ):
        self.store = store
        self.oracle = oracle
        self.provider = provider
        self.notifier = notifier
        self.tracker = tracker
        self.summary = summary

    @property
    def time_zone(self) -> str:
        return self.oracle.business_hours.timezone

    def build_slot(self, start: str | datetime, end: str | datetime | None = None) -> Slot:
        """
        Slot from request timestamps.

        Raises:
            InvalidBookingInput: If a timestamp is malformed or end <= start
        """
        try:
            start_dt = parse_timestamp(start) if isinstance(start, str) else start
            end_dt = parse_timestamp(end) if isinstance(end, str) else end
            return self.oracle.build_slot(start_dt, end_dt)
        except (TypeError, ValueError) as e:
            raise InvalidBookingInput(f"Invalid slot time: {e}") from e

    def _bookable_key(self, key: str) -> str:
        """Normalized key of a bookable slot start."""
        key = normalize_slot_key(key)
        self._require_bookable(Slot.from_start(parse_timestamp(key), self.oracle.slot_duration_minutes))
        return key

    def _require_bookable(self, slot: Slot) -> None:
        # Holds are keyed by start only, so off-grid or resized slots would dodge them
        if not self.oracle.is_bookable(slot):
            raise InvalidBookingInput(
                f"Slot must start on a {self.oracle.granularity_minutes}-minute boundary, "
                f"last {self.oracle.slot_duration_minutes} minutes and fall within business hours",
                slot_key=slot.key,
            )

    async def list_open_slots(self, day: date, holder_id: str | None = None) -> list[Slot]:
        """
        Free slots for a local day, minus slots held by other holders.

        Raises:
            BookingProviderError: If the provider cannot answer
        """
        try:
            free = await self.oracle.compute_free_slots(day)
        except ProviderError as e:
            logger.error("Availability lookup failed", day=day.isoformat(), error=str(e))
            raise BookingProviderError.from_provider(e) from e

        held = self.store.held_keys(exclude_holder=holder_id)
        open_slots = [slot for slot in free if slot.key not in held]
        logger.info(
            "Open slots listed",
            day=day.isoformat(),
            free=len(free),
            held=len(free) - len(open_slots),
        )
        return open_slots

    async def check_slot(self, slot: Slot, holder_id: str | None = None) -> SlotCheck:
        """
        Provider availability plus local hold status for one slot.

        Raises:
            BookingProviderError: If the provider cannot answer
        """
        try:
            free = await self.oracle.is_slot_free(slot)
        except ProviderError as e:
            logger.error("Slot check failed", slot_key=slot.key, error=str(e))
            raise BookingProviderError.from_provider(e, slot.key) from e
        return SlotCheck(slot=slot, free=free, held=self.store.is_held(slot.key, holder_id))

    def acquire_slot(self, key: str, holder_id: str, ttl_seconds: int | None = None) -> Reservation:
        """
        Take or refresh a hold on a slot.

        Raises:
            InvalidBookingInput: If the key or holder is missing, or the key is not a bookable slot
            SlotTakenError: If another holder has a live reservation
        """
        if not key or not holder_id:
            raise InvalidBookingInput("slotKey and holderId are required")
        key = self._bookable_key(key)

        if not self.store.acquire(key, holder_id, ttl_seconds):
            raise SlotTakenError("Slot is already reserved by another caller", slot_key=key)

        reservation = self.store.get(key)
        if reservation is None:
            # A TTL shorter than clock resolution can lapse before the read
            raise ReservationExpiredError("Reservation expired immediately", slot_key=key)
        return reservation

    def release_slot(self, key: str, holder_id: str) -> None:
        """
        Drop a hold owned by holder_id.

        Raises:
            InvalidBookingInput: If the key or holder is missing, or the key is not a bookable slot
            ReservationNotFoundError: If holder_id has no live reservation on the key
        """
        if not key or not holder_id:
            raise InvalidBookingInput("slotKey and holderId are required")
        key = self._bookable_key(key)

        if not self.store.release(key, holder_id):
            raise ReservationNotFoundError("No matching reservation for this holder", slot_key=key)

    async def book_slot(
        self,
        slot: Slot,
        holder_id: str,
        attendee: Attendee,
        call_id: str | None = None,
    ) -> ExternalEvent:
        """
        Book a slot end to end.

        Raises:
            InvalidBookingInput: Missing holder or attendee email, or a slot off the bookable grid
            SlotTakenError: Another holder has the reservation
            SlotNoLongerAvailableError: The provider reports a conflict
            ReservationExpiredError: The reservation lapsed before confirmation
            BookingProviderError: The provider failed
        """
        if not holder_id:
            raise InvalidBookingInput("holderId is required")
        if not attendee.email or not attendee.email.strip():
            raise InvalidBookingInput("Attendee email is required")
        self._require_bookable(slot)

        key = slot.key
        log = logger.bind(slot_key=key, holder_id=holder_id, call_id=call_id)

        # 1. Exclusive local hold
        if not self.store.acquire(key, holder_id):
            log.info("Booking rejected, slot held by another caller")
            raise SlotTakenError("Slot is already reserved by another caller", slot_key=key)

        # 2. Re-check external state the reservation table cannot see
        try:
            free = await self.oracle.is_slot_free(slot)
        except ProviderError as e:
            self.store.release(key, holder_id)
            log.error("Availability re-check failed, reservation released", error=str(e))
            raise BookingProviderError.from_provider(e, key) from e

        if not free:
            self.store.release(key, holder_id)
            log.info("Slot booked elsewhere, reservation released")
            raise SlotNoLongerAvailableError("Slot is no longer available", slot_key=key)

        # 3. Consume the reservation
        if not self.store.confirm(key, holder_id):
            log.warning("Reservation expired before confirmation")
            raise ReservationExpiredError("Reservation expired before confirmation", slot_key=key)

        # 4. Permanent booking. The reservation is already consumed from here on.
        draft = EventDraft(
            summary=f"{self.summary} - {attendee.name}" if attendee.name else self.summary,
            start=slot.start,
            end=slot.end,
            time_zone=self.time_zone,
            attendee_email=attendee.email,
            attendee_name=attendee.name or "Guest",
            description=self._description(attendee, call_id),
        )
        try:
            event = await self.provider.create_event(self.oracle.calendar_id, draft)
        except ProviderConflictError as e:
            log.warning("Provider reported conflict on create", error=str(e))
            raise SlotNoLongerAvailableError("Slot is no longer available", slot_key=key) from e
        except ProviderError as e:
            log.error("Event creation failed", error=str(e), status_code=e.status_code)
            raise BookingProviderError.from_provider(e, key) from e

        log.info("Booking created", event_id=event.id)

        # 5. Outcome bookkeeping and background notification
        slot_info = slot.to_dict(self.time_zone)
        scheduling_data = {
            "slotKey": key,
            "startTime": slot_info["startTime"],
            "endTime": slot_info["endTime"],
            "eventId": event.id,
        }
        if call_id and self.tracker is not None:
            self.tracker.record_booking(call_id, key, scheduling_data)

        self.notifier.dispatch(
            {
                "name": attendee.name,
                "email": attendee.email,
                "phone": attendee.phone or "",
                "call_id": call_id,
                "schedulingComplete": True,
                "appointmentDate": slot_info["date"],
                "appointmentTime": slot_info["displayTime"],
                "meetingLink": event.meeting_link or "",
                "eventLink": event.html_link or "",
                "schedulingData": scheduling_data,
            }
        )
        return event

    @staticmethod
    def _description(attendee: Attendee, call_id: str | None) -> str:
        lines = [f"Attendee: {attendee.name or 'Guest'}", f"Email: {attendee.email}"]
        if attendee.phone:
            lines.append(f"Phone: {attendee.phone}")
        if call_id:
            lines.append(f"Call ID: {call_id}")
        return "\n".join(lines)
