# app/models/api/call_response.py
"""
Call API response models.
"""

from typing import Any

from pydantic import BaseModel, Field


class TriggerCallResponse(BaseModel):
    success: bool = Field(default=True)
    message: str = Field(..., description="Human-readable outcome")
    call_id: str = Field(..., description="Call id assigned by the call service")
    session_id: str = Field(..., description="Session id correlating the lead")


class WebhookAckResponse(BaseModel):
    """Acknowledgement for a webhook delivery. Always 200 so the sender does not retry."""

    success: bool = Field(default=True)
    call_id: str | None = Field(default=None)
    event: str | None = Field(default=None)
    state: str | None = Field(default=None, description="Call state after the event")
    ignored: bool = Field(default=False, description="Event was not applied")
    followup_emitted: bool = Field(default=False, description="A follow-up notification was sent")


class CallRecordResponse(BaseModel):
    success: bool = Field(default=True)
    call: dict[str, Any] = Field(..., description="Current call record")


class SchedulingLinkResponse(BaseModel):
    success: bool = Field(default=True)
    message: str = Field(..., description="Human-readable outcome")
    scheduling_link: str = Field(..., description="Link that was sent")
