# app/models/domain/call_domain.py
"""
Call Domain Models
Outbound call records and the lifecycle state machine driven by call-service webhooks.
"""

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any


class CallState(str, Enum):
    INITIATED = "initiated"
    IN_PROGRESS = "in_progress"
    ENDED = "ended"
    ANALYZED = "analyzed"

    @property
    def rank(self) -> int:
        return _STATE_ORDER.index(self)

    def is_terminal(self) -> bool:
        return self is CallState.ANALYZED


_STATE_ORDER = [CallState.INITIATED, CallState.IN_PROGRESS, CallState.ENDED, CallState.ANALYZED]

# Webhook event name -> state it moves the call to
EVENT_TRANSITIONS: dict[str, CallState] = {
    "call_started": CallState.IN_PROGRESS,
    "call_ended": CallState.ENDED,
    "call_analyzed": CallState.ANALYZED,
}


def normalize_phone(phone: str | None) -> str:
    """E.164-ish formatting: numbers without a leading + are treated as US numbers."""
    if not phone:
        return ""
    phone = phone.strip()
    if phone.startswith("+") or not re.search(r"\d", phone):
        return phone
    return "+1" + re.sub(r"[^0-9]", "", phone)


@dataclass
class CallRecord:
    """Progress of one outbound call. Mutated only through CallRegistry."""

    call_id: str
    name: str = ""
    email: str = ""
    phone: str = ""
    session_id: str = ""
    state: CallState = CallState.INITIATED
    call_status: str | None = None
    scheduling_complete: bool = False
    discovery_complete: bool = False
    followup_sent: bool = False
    selected_slot: str | None = None
    preferred_day: str = ""
    scheduling_data: dict[str, Any] = field(default_factory=dict)
    discovery_data: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    terminal_at: datetime | None = None

    def advance(self, target: CallState, now: datetime) -> bool:
        """Move forward to `target`. Returns False when it would not be a forward move."""
        if target.rank <= self.state.rank:
            return False
        self.state = target
        self.updated_at = now
        if target.is_terminal():
            self.terminal_at = now
        return True

    def mark_scheduling_complete(self, now: datetime) -> None:
        # Never reverts to False once set
        self.scheduling_complete = True
        self.updated_at = now

    def is_expired(self, now: datetime, retention: timedelta) -> bool:
        # Calls that never reach a terminal state expire after the same idle window
        since = self.terminal_at if self.terminal_at is not None else self.updated_at
        return now >= since + retention

    def contact_fields(self) -> dict[str, Any]:
        """Identity fields every downstream notification carries."""
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "call_id": self.call_id,
            "schedulingComplete": self.scheduling_complete,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "call_id": self.call_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "session_id": self.session_id,
            "state": self.state.value,
            "call_status": self.call_status,
            "schedulingComplete": self.scheduling_complete,
            "discoveryComplete": self.discovery_complete,
            "selectedSlot": self.selected_slot,
            "preferredDay": self.preferred_day,
            "schedulingData": self.scheduling_data,
            "discoveryData": self.discovery_data,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
