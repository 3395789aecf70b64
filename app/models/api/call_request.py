# app/models/api/call_request.py
"""
Call API request models.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TriggerCallRequest(_CamelModel):
    """Start an outbound call to a lead."""

    name: str = Field(default="", max_length=200, description="Lead name")
    email: str = Field(..., description="Lead email (required for follow-up)")
    phone: str = Field(..., min_length=1, max_length=40, description="Lead phone number")
    user_id: str | None = Field(default=None, alias="userId", description="Session id override")


class CallWebhookRequest(BaseModel):
    """Call-service webhook envelope. Unknown fields are preserved."""

    model_config = ConfigDict(extra="allow")

    event: str | None = Field(default=None, description="call_started | call_ended | call_analyzed")
    call: dict[str, Any] = Field(default_factory=dict, description="Call object from the call service")


class ConversationUpdateRequest(_CamelModel):
    """Conversation progress reported during a call."""

    discovery_complete: bool | None = Field(default=None, alias="discoveryComplete")
    selected_slot: str | None = Field(default=None, alias="selectedSlot")
    scheduling_complete: bool | None = Field(default=None, alias="schedulingComplete")
    scheduling_data: dict[str, Any] | None = Field(default=None, alias="schedulingData")
    discovery_data: dict[str, Any] | None = Field(default=None, alias="discoveryData")


class SchedulingLinkRequest(_CamelModel):
    """Send the self-service scheduling link instead of booking live."""

    call_id: str | None = Field(default=None, alias="callId")
    name: str = Field(default="")
    email: str = Field(default="")
    phone: str = Field(default="")
    preferred_day: str = Field(default="", alias="preferredDay")
    discovery_data: dict[str, Any] | None = Field(default=None, alias="discoveryData")
