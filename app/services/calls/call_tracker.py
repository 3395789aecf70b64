"""
Call-Lifecycle Tracker.

Keeps one CallRecord per outbound call and advances it through
initiated -> in_progress -> ended -> analyzed as call-service webhooks arrive.
Webhooks may be delivered more than once or out of order; states only move
forward, and the follow-up notification for an unscheduled call is emitted
at most once per record.
"""

import copy
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from app.infrastructure.observability.logging import get_logger
from app.models.domain.call_domain import (
    EVENT_TRANSITIONS,
    CallRecord,
    CallState,
    normalize_phone,
)
from app.services.calls.analysis import extract_discovery_data, extract_preferred_day
from app.services.calls.retell_client import CallServiceError, RetellCallService
from app.services.notifications.webhook_notifier import WebhookNotifier

logger = get_logger(__name__)

DEFAULT_RETENTION_HOURS = 24


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CallNotFoundError(Exception):
    """No call record exists for the given call id."""


class CallInputError(Exception):
    """Missing or malformed call fields."""


class CallRegistry:
    """Lock-guarded map of call records. Reads hand out copies."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: dict[str, CallRecord] = {}

    def add(self, record: CallRecord) -> CallRecord:
        with self._lock:
            self._records[record.call_id] = record
            return copy.deepcopy(record)

    def get(self, call_id: str) -> CallRecord | None:
        with self._lock:
            record = self._records.get(call_id)
            return copy.deepcopy(record) if record else None

    def mutate(self, call_id: str, change: Callable[[CallRecord], Any], create: Callable[[], CallRecord] | None = None):
        """
        Apply `change` to the stored record under the lock and return its result.

        Raises:
            CallNotFoundError: If the record is missing and no `create` factory is given
        """
        with self._lock:
            record = self._records.get(call_id)
            if record is None:
                if create is None:
                    raise CallNotFoundError(f"Call {call_id} not found")
                record = create()
                self._records[call_id] = record
            return change(record)

    def delete(self, call_id: str) -> bool:
        with self._lock:
            return self._records.pop(call_id, None) is not None

    def purge_retained(self, now: datetime, retention: timedelta) -> int:
        """Drop records whose retention window after the terminal state has elapsed."""
        with self._lock:
            expired = [cid for cid, rec in self._records.items() if rec.is_expired(now, retention)]
            for call_id in expired:
                del self._records[call_id]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


@dataclass
class WebhookOutcome:
    call_id: str | None
    event: str | None
    state: str | None = None
    transitioned: bool = False
    followup_emitted: bool = False
    ignored: bool = False


class CallLifecycleTracker:
    """Drives call records from webhooks and conversation updates, and emits notifications."""

    def __init__(
        self,
        registry: CallRegistry,
        notifier: WebhookNotifier,
        call_service: RetellCallService | None = None,
        from_number: str | None = None,
        agent_id: str | None = None,
        scheduling_link: str = "",
        retention_hours: int = DEFAULT_RETENTION_HOURS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.registry = registry
        self.notifier = notifier
        self.call_service = call_service
        self.from_number = from_number
        self.agent_id = agent_id
        self.scheduling_link = scheduling_link
        self.retention = timedelta(hours=retention_hours)
        self._clock = clock

    async def start_call(
        self, name: str, email: str, phone: str, user_id: str | None = None
    ) -> CallRecord:
        """
        Start an outbound call and record it as initiated.

        Raises:
            CallInputError: If phone or email is missing
            CallServiceError: If the call service is unavailable or rejects the call
        """
        if not phone:
            raise CallInputError("Missing phone number field")
        if not email or not email.strip():
            raise CallInputError("Missing email field - this is required for lead tracking")
        if self.call_service is None:
            raise CallServiceError("Call service is not configured")

        formatted_phone = normalize_phone(phone)
        session_id = user_id or f"user_{formatted_phone}"
        metadata = {
            "customer_name": name or "",
            "customer_email": email,
            "user_id": session_id,
            "needs_scheduling": True,
            "call_source": "website_form",
        }

        call_id = await self.call_service.start_call(
            self.from_number, formatted_phone, self.agent_id, metadata
        )

        now = self._clock()
        record = self.registry.add(
            CallRecord(
                call_id=call_id,
                name=name or "",
                email=email,
                phone=formatted_phone,
                session_id=session_id,
                metadata=metadata,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("Call record created", call_id=call_id, session_id=session_id)
        return record

    async def handle_webhook(self, payload: dict[str, Any]) -> WebhookOutcome:
        """Apply one call-service webhook delivery."""
        event = payload.get("event")
        call = payload.get("call") or {}
        call_id = call.get("call_id")

        if not call_id:
            logger.warning("Webhook without call id ignored", webhook_event=event)
            return WebhookOutcome(call_id=None, event=event, ignored=True)

        target = EVENT_TRANSITIONS.get(event)
        if target is None:
            logger.info("Unrecognized webhook event ignored", webhook_event=event, call_id=call_id)
            return WebhookOutcome(call_id=call_id, event=event, ignored=True)

        metadata = call.get("metadata") or {}
        preferred_day = ""
        discovery: dict[str, Any] = {}
        if target in (CallState.ENDED, CallState.ANALYZED):
            preferred_day = extract_preferred_day(call)
            discovery = extract_discovery_data(call)

        now = self._clock()

        def create() -> CallRecord:
            logger.info("Creating call record from webhook", call_id=call_id)
            return CallRecord(
                call_id=call_id,
                name=metadata.get("customer_name", ""),
                email=metadata.get("customer_email", ""),
                phone=normalize_phone(call.get("to_number")),
                session_id=metadata.get("user_id", ""),
                metadata=metadata,
                created_at=now,
                updated_at=now,
            )

        def apply(record: CallRecord) -> tuple[WebhookOutcome, dict[str, Any] | None]:
            record.email = record.email or metadata.get("customer_email", "")
            record.name = record.name or metadata.get("customer_name", "")
            record.call_status = call.get("call_status") or record.call_status
            if preferred_day:
                record.preferred_day = preferred_day
            if discovery:
                record.discovery_data.update(discovery)

            transitioned = record.advance(target, now)
            outcome = WebhookOutcome(
                call_id=call_id,
                event=event,
                state=record.state.value,
                transitioned=transitioned,
            )

            followup = None
            if (
                transitioned
                and target is CallState.ANALYZED
                and not record.scheduling_complete
                and not record.followup_sent
            ):
                record.followup_sent = True
                outcome.followup_emitted = True
                followup = self._followup_payload(record)
            return outcome, followup

        outcome, followup = self.registry.mutate(call_id, apply, create=create)

        logger.info(
            "Webhook applied",
            call_id=call_id,
            webhook_event=event,
            state=outcome.state,
            transitioned=outcome.transitioned,
        )

        if followup is not None:
            logger.info("Call ended without scheduling, emitting follow-up", call_id=call_id)
            self.notifier.dispatch(followup)

        return outcome

    def _followup_payload(self, record: CallRecord) -> dict[str, Any]:
        return {
            **record.contact_fields(),
            "needs_followup": True,
            "call_status": record.call_status,
            "preferredDay": record.preferred_day,
            "schedulingLink": self.scheduling_link,
            "discovery_data": dict(record.discovery_data),
        }

    def update_conversation(
        self,
        call_id: str,
        discovery_complete: bool | None = None,
        selected_slot: str | None = None,
        scheduling_data: dict[str, Any] | None = None,
        scheduling_complete: bool | None = None,
        discovery_data: dict[str, Any] | None = None,
    ) -> CallRecord:
        """
        Record conversation progress reported by the voice agent.

        Raises:
            CallNotFoundError: If the call is unknown
        """
        now = self._clock()

        def apply(record: CallRecord) -> CallRecord:
            if discovery_complete:
                record.discovery_complete = True
            if selected_slot:
                record.selected_slot = selected_slot
            if scheduling_data:
                record.scheduling_data.update(scheduling_data)
            if discovery_data:
                record.discovery_data.update(discovery_data)
            if scheduling_complete:
                record.mark_scheduling_complete(now)
            record.updated_at = now
            return copy.deepcopy(record)

        record = self.registry.mutate(call_id, apply)
        logger.info(
            "Conversation updated",
            call_id=call_id,
            discovery_complete=record.discovery_complete,
            scheduling_complete=record.scheduling_complete,
            selected_slot=record.selected_slot,
        )
        return record

    def record_booking(
        self, call_id: str, slot_key: str, scheduling_data: dict[str, Any]
    ) -> CallRecord | None:
        """Mark a call as scheduled after a successful booking; unknown calls are skipped."""
        try:
            return self.update_conversation(
                call_id,
                selected_slot=slot_key,
                scheduling_data=scheduling_data,
                scheduling_complete=True,
            )
        except CallNotFoundError:
            logger.warning("Booking references unknown call", call_id=call_id, slot_key=slot_key)
            return None

    async def send_scheduling_link(
        self,
        call_id: str | None = None,
        name: str = "",
        email: str = "",
        phone: str = "",
        preferred_day: str = "",
        discovery_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Hand the caller a self-service scheduling link through the automation webhook.

        Raises:
            CallInputError: If no email can be found for the caller
        """
        record = self.registry.get(call_id) if call_id else None
        if record is not None:
            email = email or record.email or record.metadata.get("customer_email", "")
            name = name or record.name
            phone = phone or record.phone

        if not email or not email.strip():
            raise CallInputError("Could not find an email address for scheduling - this is required")

        if record is not None:
            self.update_conversation(
                call_id,
                scheduling_complete=True,
                scheduling_data={"preferredDay": preferred_day, "schedulingLink": self.scheduling_link},
                discovery_data=discovery_data,
            )

        payload = {
            "name": name,
            "email": email,
            "phone": phone,
            "call_id": call_id,
            "schedulingComplete": True,
            "preferredDay": preferred_day,
            "schedulingLink": self.scheduling_link,
            "discovery_data": discovery_data or {},
        }
        self.notifier.dispatch(payload)
        logger.info("Scheduling link dispatched", call_id=call_id)
        return payload

    def purge_expired(self) -> int:
        """Delete records past their retention window after the terminal state."""
        removed = self.registry.purge_retained(self._clock(), self.retention)
        if removed:
            logger.info("Expired call records purged", count=removed)
        return removed
