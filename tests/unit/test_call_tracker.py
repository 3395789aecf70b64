from datetime import timedelta

import pytest

from app.models.domain.call_domain import CallRecord, CallState, normalize_phone
from app.services.calls.call_tracker import CallInputError, CallNotFoundError, CallRegistry
from app.services.calls.retell_client import CallServiceError


def _webhook(event, call_id="call-123", **call):
    return {"event": event, "call": {"call_id": call_id, **call}}


@pytest.mark.asyncio
async def test_start_call_records_initiated_call(tracker, call_service):
    record = await tracker.start_call("Dana Lee", "dana@example.com", "(555) 123-4567")

    assert record.call_id == "call-123"
    assert record.state is CallState.INITIATED
    assert record.phone == "+15551234567"
    assert record.session_id == "user_+15551234567"

    sent = call_service.calls[0]
    assert sent["to_number"] == "+15551234567"
    assert sent["agent_id"] == "agent-1"
    assert sent["metadata"]["customer_email"] == "dana@example.com"
    assert sent["metadata"]["needs_scheduling"] is True


@pytest.mark.asyncio
async def test_start_call_requires_email_and_phone(tracker, call_service):
    with pytest.raises(CallInputError):
        await tracker.start_call("Dana", "", "5551234567")
    with pytest.raises(CallInputError):
        await tracker.start_call("Dana", "dana@example.com", "")

    assert call_service.calls == []


@pytest.mark.asyncio
async def test_start_call_without_call_service(tracker):
    tracker.call_service = None

    with pytest.raises(CallServiceError):
        await tracker.start_call("Dana", "dana@example.com", "5551234567")


@pytest.mark.asyncio
async def test_states_advance_in_order(tracker):
    await tracker.start_call("Dana", "dana@example.com", "5551234567")

    started = await tracker.handle_webhook(_webhook("call_started"))
    ended = await tracker.handle_webhook(_webhook("call_ended", call_status="ended"))

    assert started.state == "in_progress"
    assert ended.state == "ended"
    assert tracker.registry.get("call-123").call_status == "ended"


@pytest.mark.asyncio
async def test_out_of_order_event_never_moves_backwards(tracker):
    await tracker.start_call("Dana", "dana@example.com", "5551234567")
    await tracker.handle_webhook(_webhook("call_ended"))

    late = await tracker.handle_webhook(_webhook("call_started"))

    assert late.transitioned is False
    assert late.state == "ended"


@pytest.mark.asyncio
async def test_analyzed_without_scheduling_emits_one_followup(tracker, notifier):
    await tracker.start_call("Dana", "dana@example.com", "5551234567")

    first = await tracker.handle_webhook(_webhook("call_analyzed", call_status="ended"))
    duplicate = await tracker.handle_webhook(_webhook("call_analyzed", call_status="ended"))

    assert first.followup_emitted is True
    assert duplicate.followup_emitted is False
    assert len(notifier.sent) == 1

    payload = notifier.sent[0]
    assert payload["needs_followup"] is True
    assert payload["schedulingComplete"] is False
    assert payload["email"] == "dana@example.com"
    assert payload["schedulingLink"] == "https://calendly.com/acme/intro"


@pytest.mark.asyncio
async def test_analyzed_after_scheduling_emits_nothing(tracker, notifier):
    await tracker.start_call("Dana", "dana@example.com", "5551234567")
    tracker.update_conversation("call-123", selected_slot="2025-05-05T17:00:00Z", scheduling_complete=True)

    outcome = await tracker.handle_webhook(_webhook("call_analyzed"))

    assert outcome.state == "analyzed"
    assert outcome.followup_emitted is False
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_unknown_event_is_ignored(tracker, notifier):
    await tracker.start_call("Dana", "dana@example.com", "5551234567")

    outcome = await tracker.handle_webhook(_webhook("transcript_updated"))

    assert outcome.ignored is True
    assert tracker.registry.get("call-123").state is CallState.INITIATED


@pytest.mark.asyncio
async def test_webhook_without_call_id_is_ignored(tracker):
    outcome = await tracker.handle_webhook({"event": "call_started", "call": {}})

    assert outcome.ignored is True
    assert len(tracker.registry) == 0


@pytest.mark.asyncio
async def test_webhook_for_unknown_call_creates_record(tracker, notifier):
    outcome = await tracker.handle_webhook(
        _webhook(
            "call_analyzed",
            call_id="call-777",
            to_number="5559876543",
            metadata={"customer_name": "Sam", "customer_email": "sam@example.com"},
            analysis={"custom_data": '{"preferredDay": "Thursday"}'},
        )
    )

    record = tracker.registry.get("call-777")
    assert outcome.followup_emitted is True
    assert record.email == "sam@example.com"
    assert record.phone == "+15559876543"
    assert record.preferred_day == "Thursday"
    assert notifier.sent[0]["preferredDay"] == "Thursday"


@pytest.mark.asyncio
async def test_scheduling_complete_never_reverts(tracker):
    await tracker.start_call("Dana", "dana@example.com", "5551234567")
    tracker.update_conversation("call-123", scheduling_complete=True)

    record = tracker.update_conversation("call-123", scheduling_complete=False, discovery_complete=True)

    assert record.scheduling_complete is True
    assert record.discovery_complete is True


def test_update_unknown_call(tracker):
    with pytest.raises(CallNotFoundError):
        tracker.update_conversation("missing", discovery_complete=True)


def test_record_booking_for_unknown_call_is_skipped(tracker):
    assert tracker.record_booking("missing", "2025-05-05T17:00:00Z", {}) is None


@pytest.mark.asyncio
async def test_send_scheduling_link_uses_record_email(tracker, notifier):
    await tracker.start_call("Dana", "dana@example.com", "5551234567")

    payload = await tracker.send_scheduling_link(call_id="call-123", preferred_day="Friday")

    assert payload["email"] == "dana@example.com"
    assert payload["schedulingComplete"] is True
    assert notifier.sent[0]["schedulingLink"] == "https://calendly.com/acme/intro"
    assert tracker.registry.get("call-123").scheduling_complete is True


@pytest.mark.asyncio
async def test_send_scheduling_link_requires_email(tracker, notifier):
    with pytest.raises(CallInputError):
        await tracker.send_scheduling_link(call_id="unknown")

    assert notifier.sent == []


@pytest.mark.asyncio
async def test_terminal_records_purged_after_retention(tracker, clock):
    await tracker.start_call("Dana", "dana@example.com", "5551234567")
    await tracker.handle_webhook(_webhook("call_analyzed"))

    clock.advance(timedelta(hours=23).total_seconds())
    assert tracker.purge_expired() == 0

    clock.advance(timedelta(hours=1).total_seconds())
    assert tracker.purge_expired() == 1
    assert tracker.registry.get("call-123") is None


@pytest.mark.asyncio
async def test_stale_unfinished_records_purged_after_retention(tracker, clock):
    for call_id in ("stray-1", "stray-2", "stray-3"):
        await tracker.handle_webhook(_webhook("call_started", call_id=call_id))
    await tracker.handle_webhook(_webhook("call_ended", call_id="stray-3"))

    clock.advance(timedelta(hours=23).total_seconds())
    await tracker.handle_webhook(_webhook("call_ended", call_id="stray-2"))
    clock.advance(timedelta(hours=1).total_seconds())

    # stray-2 saw activity an hour ago, the others have been idle a full day
    assert tracker.purge_expired() == 2
    assert tracker.registry.get("stray-2").state is CallState.ENDED

    clock.advance(timedelta(days=30).total_seconds())
    assert tracker.purge_expired() == 1
    assert len(tracker.registry) == 0


def test_registry_hands_out_copies():
    registry = CallRegistry()
    registry.add(CallRecord(call_id="c1"))

    copy = registry.get("c1")
    copy.scheduling_data["x"] = 1

    assert registry.get("c1").scheduling_data == {}


def test_normalize_phone():
    assert normalize_phone("555-123-4567") == "+15551234567"
    assert normalize_phone("+447700900123") == "+447700900123"
    assert normalize_phone("") == ""
    assert normalize_phone(None) == ""
