# app/models/api/scheduling_request.py
"""
Scheduling API request models.
Used by routes for input validation. Wire names are camelCase.
"""

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LockSlotRequest(_CamelModel):
    """Request to take or refresh a hold on a slot."""

    slot_key: str = Field(..., min_length=1, alias="slotKey", description="Slot start (ISO-8601)")
    holder_id: str = Field(..., min_length=1, alias="holderId", description="Caller/session identity")
    ttl_seconds: int | None = Field(
        default=None, ge=1, le=3600, alias="ttlSeconds", description="Hold duration (default: 300s)"
    )


class ReleaseSlotRequest(_CamelModel):
    """Request to drop a hold on a slot."""

    slot_key: str = Field(..., min_length=1, alias="slotKey", description="Slot start (ISO-8601)")
    holder_id: str = Field(..., min_length=1, alias="holderId", description="Caller/session identity")


class AttendeeRequest(_CamelModel):
    """Person the appointment is for."""

    name: str = Field(default="", max_length=200, description="Attendee name")
    email: str = Field(..., min_length=3, max_length=320, description="Attendee email (required for the invite)")
    phone: str | None = Field(default=None, max_length=40, description="Attendee phone")


class BookSlotRequest(_CamelModel):
    """Request to book a slot end to end."""

    start_time: str = Field(..., min_length=1, alias="startTime", description="Slot start (ISO-8601)")
    end_time: str | None = Field(
        default=None, alias="endTime", description="Slot end (default: start + slot duration)"
    )
    holder_id: str = Field(..., min_length=1, alias="holderId", description="Caller/session identity")
    attendee: AttendeeRequest = Field(..., description="Who the appointment is for")
    call_id: str | None = Field(default=None, alias="callId", description="Originating call, if any")


class ParsePreferenceRequest(_CamelModel):
    """Free-text scheduling preference from the caller."""

    user_input: str = Field(default="", max_length=500, alias="userInput", description="Caller's words")
    preferred_day: str = Field(default="", max_length=100, alias="preferredDay", description="Day hint")
    holder_id: str | None = Field(
        default=None, alias="holderId", description="Exclude this holder's own holds from filtering"
    )
