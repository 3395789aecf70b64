import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from tests.conftest import FakeCalendarProvider, FakeCallService, FakeNotifier


@pytest.fixture
def fake_notifier():
    return FakeNotifier()


@pytest.fixture
def fake_call_service():
    return FakeCallService(call_id="call-555")


@pytest.fixture
def client(test_settings, fake_notifier, fake_call_service):
    app = create_app(
        test_settings,
        provider=FakeCalendarProvider(),
        notifier=fake_notifier,
        call_service=fake_call_service,
    )
    with TestClient(app) as test_client:
        yield test_client


def _trigger(client):
    return client.post(
        "/calls/trigger",
        json={"name": "Dana Lee", "email": "dana@example.com", "phone": "5551234567"},
    )


def test_trigger_call(client, fake_call_service):
    response = _trigger(client)

    assert response.status_code == 200
    assert response.json()["call_id"] == "call-555"
    assert fake_call_service.calls[0]["to_number"] == "+15551234567"
    assert fake_call_service.calls[0]["from_number"] == "+15550000000"


def test_trigger_call_requires_email(client):
    response = client.post("/calls/trigger", json={"name": "Dana", "email": " ", "phone": "5551234567"})

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_webhook_lifecycle_and_single_followup(client, fake_notifier):
    _trigger(client)

    for event in ("call_started", "call_ended", "call_analyzed", "call_analyzed"):
        response = client.post(
            "/calls/webhook",
            json={"event": event, "call": {"call_id": "call-555", "call_status": "ended"}},
        )
        assert response.status_code == 200

    assert response.json()["state"] == "analyzed"
    assert response.json()["followup_emitted"] is False
    followups = [sent for sent in fake_notifier.sent if sent.get("needs_followup")]
    assert len(followups) == 1


def test_webhook_unknown_event_acknowledged(client):
    response = client.post("/calls/webhook", json={"event": "transcript_updated", "call": {"call_id": "x"}})

    assert response.status_code == 200
    assert response.json()["ignored"] is True


def test_conversation_update(client):
    _trigger(client)

    response = client.post(
        "/calls/call-555/conversation",
        json={"discoveryComplete": True, "selectedSlot": "2025-05-05T17:00:00Z"},
    )
    record = client.get("/calls/call-555")

    assert response.status_code == 200
    assert response.json()["call"]["discoveryComplete"] is True
    assert record.json()["call"]["selectedSlot"] == "2025-05-05T17:00:00Z"


def test_conversation_update_unknown_call(client):
    response = client.post("/calls/missing/conversation", json={"discoveryComplete": True})

    assert response.status_code == 404


def test_scheduling_link(client, fake_notifier):
    _trigger(client)

    response = client.post("/calls/scheduling-link", json={"callId": "call-555", "preferredDay": "Friday"})

    assert response.status_code == 200
    assert fake_notifier.sent[-1]["email"] == "dana@example.com"
    assert fake_notifier.sent[-1]["preferredDay"] == "Friday"
    assert client.get("/calls/call-555").json()["call"]["schedulingComplete"] is True
