import json

import pytest

from app.services.calls.retell_client import CallServiceError, RetellCallService

BASE = "https://api.retellai.com"


@pytest.mark.asyncio
async def test_start_call(httpx_mock):
    httpx_mock.add_response(
        method="POST",
        url=f"{BASE}/v2/create-phone-call",
        json={"call_id": "call-abc", "call_status": "registered"},
    )
    service = RetellCallService("key", webhook_url="https://svc.example.com/calls/webhook")

    call_id = await service.start_call("+15550000000", "+15551234567", "agent-1", {"customer_email": "d@example.com"})
    await service.close()

    assert call_id == "call-abc"
    request = httpx_mock.get_request()
    body = json.loads(request.content)
    assert request.headers["Authorization"] == "Bearer key"
    assert body["override_agent_id"] == "agent-1"
    assert body["webhook_url"] == "https://svc.example.com/calls/webhook"
    assert body["metadata"] == {"customer_email": "d@example.com"}


@pytest.mark.asyncio
async def test_start_call_rejected(httpx_mock):
    httpx_mock.add_response(method="POST", url=f"{BASE}/v2/create-phone-call", status_code=422, json={})
    service = RetellCallService("key")

    with pytest.raises(CallServiceError) as exc:
        await service.start_call("+15550000000", "+15551234567", "agent-1", {})
    await service.close()

    assert exc.value.status_code == 422


@pytest.mark.asyncio
async def test_start_call_not_configured():
    service = RetellCallService(None)

    with pytest.raises(CallServiceError):
        await service.start_call("+15550000000", "+15551234567", "agent-1", {})
    await service.close()
