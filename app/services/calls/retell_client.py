"""
Outbound call service client (Retell).
Starts phone calls; lifecycle updates arrive later through the webhook route.
"""

from typing import Any

import httpx

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

REQUEST_TIMEOUT = 20


class CallServiceError(Exception):
    """Custom exception for call service errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RetellCallService:
    """Thin async client over the Retell phone-call API."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.retellai.com",
        webhook_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._webhook_url = webhook_url
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(REQUEST_TIMEOUT))

    async def close(self) -> None:
        await self._client.aclose()

    async def start_call(
        self,
        from_number: str | None,
        to_number: str,
        agent_id: str | None,
        metadata: dict[str, Any],
    ) -> str:
        """
        Start an outbound call.

        Returns:
            str: Call id assigned by the call service

        Raises:
            CallServiceError: If the service is not configured or rejects the call
        """
        if not self._api_key or not from_number or not agent_id:
            raise CallServiceError("Call service is not configured")

        body: dict[str, Any] = {
            "from_number": from_number,
            "to_number": to_number,
            "override_agent_id": agent_id,
            "metadata": metadata,
        }
        if self._webhook_url:
            body["webhook_url"] = self._webhook_url

        logger.info("Starting outbound call", to_number=to_number, agent_id=agent_id)

        try:
            response = await self._client.post(
                f"{self._base_url}/v2/create-phone-call",
                json=body,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as e:
            logger.error("Call service request failed", error=str(e))
            raise CallServiceError(f"Call service request failed: {e}") from e

        if not response.is_success:
            logger.error(
                "Call service rejected call",
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
            )
            raise CallServiceError(
                f"Call service error (HTTP {response.status_code})",
                status_code=response.status_code,
            )

        call_id = (response.json() or {}).get("call_id")
        if not call_id:
            raise CallServiceError("Call service response missing call_id")

        logger.info("Outbound call started", call_id=call_id)
        return call_id
