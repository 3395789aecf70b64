# app/models/api/scheduling_response.py
"""
Scheduling API response models.
Used by routes for output formatting.
"""

from typing import Any

from pydantic import BaseModel, Field


class AvailableSlotsResponse(BaseModel):
    """Open slots for one local day."""

    success: bool = Field(default=True, description="Request succeeded")
    date: str = Field(..., description="Local day (YYYY-MM-DD)")
    timezone: str = Field(..., description="Business timezone")
    slots: list[dict[str, Any]] = Field(..., description="Open slots in start order")
    count: int = Field(..., description="Number of open slots")


class SlotAvailabilityResponse(BaseModel):
    """Availability of one specific slot."""

    success: bool = Field(default=True, description="Request succeeded")
    available: bool = Field(..., description="Free at the provider and not held by another caller")
    free: bool = Field(..., description="No provider conflict")
    held: bool = Field(..., description="Held by a live reservation of another caller")
    slot: dict[str, Any] = Field(..., description="The checked slot")


class ReservationResponse(BaseModel):
    """Result of taking a hold on a slot."""

    success: bool = Field(default=True, description="Request succeeded")
    message: str = Field(..., description="Human-readable outcome")
    reservation: dict[str, Any] = Field(..., description="Live reservation details")


class ReleaseResponse(BaseModel):
    """Result of releasing a hold."""

    success: bool = Field(default=True, description="Request succeeded")
    message: str = Field(..., description="Human-readable outcome")
    slot_key: str = Field(..., description="Released slot key")


class BookingResponse(BaseModel):
    """A completed booking."""

    success: bool = Field(default=True, description="Request succeeded")
    message: str = Field(..., description="Confirmation message for the caller")
    event: dict[str, Any] = Field(..., description="Created external event")
    slot: dict[str, Any] = Field(..., description="Booked slot")


class PreferenceResponse(BaseModel):
    """Parsed time preference with the open slots on that day."""

    success: bool = Field(default=True, description="Request succeeded")
    preference: dict[str, Any] = Field(..., description="Parsed candidate date and hour")
    slots: list[dict[str, Any]] = Field(..., description="Open slots on the candidate day")
    closest_slot: dict[str, Any] | None = Field(
        default=None, description="Open slot nearest the preferred hour"
    )
