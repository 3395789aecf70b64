"""
Scheduling API Routes
Slot listing, availability checks, slot holds and bookings.
"""

from datetime import date, datetime

from fastapi import APIRouter, Depends, Query

from app.infrastructure.observability.logging import get_logger
from app.models.api.scheduling_request import (
    BookSlotRequest,
    LockSlotRequest,
    ParsePreferenceRequest,
    ReleaseSlotRequest,
)
from app.models.api.scheduling_response import (
    AvailableSlotsResponse,
    BookingResponse,
    PreferenceResponse,
    ReleaseResponse,
    ReservationResponse,
    SlotAvailabilityResponse,
)
from app.models.domain.calendar_domain import Attendee, Slot
from app.routes.dependencies import get_orchestrator
from app.services.scheduling.booking import BookingOrchestrator, InvalidBookingInput
from app.services.scheduling.time_preference import parse_time_preference

logger = get_logger(__name__)

router = APIRouter(prefix="/scheduling", tags=["scheduling"])


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise InvalidBookingInput(f"Invalid date '{value}', expected YYYY-MM-DD") from e


def _closest_slot(slots: list[Slot], target: datetime) -> Slot | None:
    if not slots:
        return None
    return min(slots, key=lambda slot: abs((slot.start - target).total_seconds()))


@router.get("/available-slots", response_model=AvailableSlotsResponse)
async def available_slots(
    day: str = Query(..., alias="date", description="Local day (YYYY-MM-DD)"),
    holder_id: str | None = Query(None, description="Include this holder's own holds"),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Open slots for a day: provider-free and not held by another caller."""
    target_day = _parse_day(day)
    slots = await orchestrator.list_open_slots(target_day, holder_id)
    tz = orchestrator.time_zone

    return AvailableSlotsResponse(
        date=target_day.isoformat(),
        timezone=tz,
        slots=[slot.to_dict(tz) for slot in slots],
        count=len(slots),
    )


@router.get("/check-availability", response_model=SlotAvailabilityResponse)
async def check_availability(
    start_time: str = Query(..., alias="startTime", description="Slot start (ISO-8601)"),
    end_time: str | None = Query(None, alias="endTime", description="Slot end (ISO-8601)"),
    holder_id: str | None = Query(None, alias="holderId", description="Ignore this holder's hold"),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Check one slot against the calendar and the reservation table."""
    slot = orchestrator.build_slot(start_time, end_time)
    check = await orchestrator.check_slot(slot, holder_id)

    return SlotAvailabilityResponse(
        available=check.available,
        free=check.free,
        held=check.held,
        slot=slot.to_dict(orchestrator.time_zone),
    )


@router.post("/lock-slot", response_model=ReservationResponse)
async def lock_slot(
    body: LockSlotRequest,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Take or refresh a hold. 409 when another caller holds the slot."""
    reservation = orchestrator.acquire_slot(body.slot_key, body.holder_id, body.ttl_seconds)
    return ReservationResponse(
        message="Slot reserved",
        reservation=reservation.to_dict(orchestrator.store.now()),
    )


@router.post("/release-slot", response_model=ReleaseResponse)
async def release_slot(
    body: ReleaseSlotRequest,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Drop a hold. 404 when the holder has no live reservation on the slot."""
    orchestrator.release_slot(body.slot_key, body.holder_id)
    return ReleaseResponse(message="Slot released", slot_key=body.slot_key)


@router.post("/book", response_model=BookingResponse)
async def book(
    body: BookSlotRequest,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Book a slot: hold, re-check, confirm, create the event, notify."""
    slot = orchestrator.build_slot(body.start_time, body.end_time)
    attendee = Attendee(
        name=body.attendee.name,
        email=body.attendee.email,
        phone=body.attendee.phone,
    )

    event = await orchestrator.book_slot(slot, body.holder_id, attendee, call_id=body.call_id)

    local_start = slot.start.astimezone(orchestrator.oracle.business_hours.zone)
    message = (
        f"Your appointment is booked for {local_start.strftime('%A, %B')} {local_start.day} "
        f"at {local_start.strftime('%I:%M %p').lstrip('0')}."
    )
    return BookingResponse(
        message=message,
        event=event.to_dict(),
        slot=slot.to_dict(orchestrator.time_zone),
    )


@router.post("/parse-preference", response_model=PreferenceResponse)
async def parse_preference(
    body: ParsePreferenceRequest,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Turn a caller's free-text preference into a candidate day and the open slots on it."""
    hours = orchestrator.oracle.business_hours
    now = datetime.now(hours.zone)
    candidate = parse_time_preference(
        body.user_input,
        now,
        preferred_day=body.preferred_day,
        open_hour=hours.open_hour,
        close_hour=hours.close_hour,
    )

    slots = await orchestrator.list_open_slots(candidate.preferred.date(), body.holder_id)
    closest = _closest_slot(slots, candidate.preferred)

    logger.info(
        "Time preference parsed",
        preferred=candidate.preferred.isoformat(),
        open_slots=len(slots),
    )
    return PreferenceResponse(
        preference=candidate.to_dict(),
        slots=[slot.to_dict(hours.timezone) for slot in slots],
        closest_slot=closest.to_dict(hours.timezone) if closest else None,
    )
