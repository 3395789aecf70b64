"""
Call API Routes
Outbound call triggering, call-service webhooks and conversation updates.
"""

from fastapi import APIRouter, Depends

from app.infrastructure.observability.logging import get_logger
from app.models.api.call_request import (
    CallWebhookRequest,
    ConversationUpdateRequest,
    SchedulingLinkRequest,
    TriggerCallRequest,
)
from app.models.api.call_response import (
    CallRecordResponse,
    SchedulingLinkResponse,
    TriggerCallResponse,
    WebhookAckResponse,
)
from app.routes.dependencies import get_tracker
from app.services.calls.call_tracker import CallLifecycleTracker, CallNotFoundError

logger = get_logger(__name__)

router = APIRouter(prefix="/calls", tags=["calls"])


@router.post("/trigger", response_model=TriggerCallResponse)
async def trigger_call(
    body: TriggerCallRequest,
    tracker: CallLifecycleTracker = Depends(get_tracker),
):
    """Start an outbound call to a lead."""
    record = await tracker.start_call(body.name, body.email, body.phone, body.user_id)
    return TriggerCallResponse(
        message="Call initiated",
        call_id=record.call_id,
        session_id=record.session_id,
    )


@router.post("/webhook", response_model=WebhookAckResponse)
async def call_webhook(
    body: CallWebhookRequest,
    tracker: CallLifecycleTracker = Depends(get_tracker),
):
    """Call-service lifecycle events. Acknowledged even when ignored."""
    outcome = await tracker.handle_webhook(body.model_dump())
    return WebhookAckResponse(
        call_id=outcome.call_id,
        event=outcome.event,
        state=outcome.state,
        ignored=outcome.ignored,
        followup_emitted=outcome.followup_emitted,
    )


@router.get("/{call_id}", response_model=CallRecordResponse)
async def get_call(
    call_id: str,
    tracker: CallLifecycleTracker = Depends(get_tracker),
):
    record = tracker.registry.get(call_id)
    if record is None:
        raise CallNotFoundError(f"Call {call_id} not found")
    return CallRecordResponse(call=record.to_dict())


@router.post("/{call_id}/conversation", response_model=CallRecordResponse)
async def update_conversation(
    call_id: str,
    body: ConversationUpdateRequest,
    tracker: CallLifecycleTracker = Depends(get_tracker),
):
    """Record discovery/scheduling progress reported by the voice agent."""
    record = tracker.update_conversation(
        call_id,
        discovery_complete=body.discovery_complete,
        selected_slot=body.selected_slot,
        scheduling_data=body.scheduling_data,
        scheduling_complete=body.scheduling_complete,
        discovery_data=body.discovery_data,
    )
    return CallRecordResponse(call=record.to_dict())


@router.post("/scheduling-link", response_model=SchedulingLinkResponse)
async def send_scheduling_link(
    body: SchedulingLinkRequest,
    tracker: CallLifecycleTracker = Depends(get_tracker),
):
    """Send the self-service scheduling link to the caller."""
    payload = await tracker.send_scheduling_link(
        call_id=body.call_id,
        name=body.name,
        email=body.email,
        phone=body.phone,
        preferred_day=body.preferred_day,
        discovery_data=body.discovery_data,
    )
    return SchedulingLinkResponse(
        message="Scheduling link sent",
        scheduling_link=payload["schedulingLink"],
    )
