"""
Downstream automation webhook.

Fire-and-forget delivery of JSON documents to the automation platform.
Delivery is at-least-once with exactly one retry after a fixed delay;
after that the failure is logged and dropped. Notification failures never
block or fail a booking.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

import httpx

from app.infrastructure.observability.logging import get_logger
from app.models.domain.call_domain import normalize_phone

logger = get_logger(__name__)

WEBHOOK_VERSION = "1.2"
WEBHOOK_SOURCE = "scheduling-service"

# Discovery question keys -> labels used by the automation platform
DISCOVERY_LABELS = {
    "question_0": "How did you hear about us",
    "question_1": "Business/industry",
    "question_2": "Main product",
    "question_3": "Running ads",
    "question_4": "Using CRM",
    "question_5": "Pain points",
}


class NotificationError(Exception):
    """Downstream webhook delivery failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def format_discovery(discovery_data: dict[str, Any]) -> tuple[dict[str, Any], str]:
    """Relabel discovery answers and render them as a notes block."""
    formatted = {DISCOVERY_LABELS.get(key, key): value for key, value in discovery_data.items()}
    notes = "\n\n".join(f"{question}: {answer}" for question, answer in formatted.items())
    return formatted, notes


class WebhookNotifier:
    """Posts notification documents to the configured automation webhook."""

    def __init__(
        self,
        webhook_url: str | None,
        timeout_seconds: float = 15.0,
        retry_delay_seconds: float = 3.0,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.webhook_url = webhook_url
        self.retry_delay_seconds = retry_delay_seconds
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))
        self._sleep = sleep
        self._tasks: set[asyncio.Task] = set()

    async def close(self) -> None:
        await self._client.aclose()

    def build_payload(self, data: dict[str, Any]) -> dict[str, Any]:
        """Normalize a notification document before sending."""
        payload = dict(data)
        payload["phone"] = normalize_phone(payload.get("phone"))

        discovery = payload.get("discovery_data")
        if discovery:
            formatted, notes = format_discovery(discovery)
            payload["formatted_discovery"] = formatted
            if notes:
                payload["notes"] = notes

        payload["timestamp"] = datetime.now(UTC).isoformat()
        payload["webhook_version"] = WEBHOOK_VERSION
        return payload

    async def _post(self, payload: dict[str, Any], retry: bool = False) -> None:
        headers = {"Content-Type": "application/json", "X-Webhook-Source": WEBHOOK_SOURCE}
        if retry:
            headers["X-Retry"] = "true"

        try:
            response = await self._client.post(self.webhook_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise NotificationError(f"Webhook request failed: {e}") from e

        if not response.is_success:
            raise NotificationError(
                f"Webhook returned HTTP {response.status_code}", status_code=response.status_code
            )

    async def send(self, data: dict[str, Any]) -> bool:
        """
        Deliver one notification with a single retry.

        Returns:
            bool: True if either attempt succeeded
        """
        if not self.webhook_url:
            logger.warning("Notification webhook not configured, dropping", call_id=data.get("call_id"))
            return False

        email = (data.get("email") or "").strip()
        if not email:
            logger.error("Notification has no email, dropping", call_id=data.get("call_id"))
            return False

        payload = self.build_payload(data)

        try:
            await self._post(payload)
            logger.info("Notification delivered", call_id=payload.get("call_id"))
            return True
        except NotificationError as e:
            logger.warning(
                "Notification delivery failed, retrying",
                call_id=payload.get("call_id"),
                error=str(e),
                retry_in_seconds=self.retry_delay_seconds,
            )

        await self._sleep(self.retry_delay_seconds)
        retry_payload = {**payload, "retry": True, "timestamp": datetime.now(UTC).isoformat()}

        try:
            await self._post(retry_payload, retry=True)
            logger.info("Notification delivered on retry", call_id=payload.get("call_id"))
            return True
        except NotificationError as e:
            logger.error(
                "Notification dropped after retry",
                call_id=payload.get("call_id"),
                error=str(e),
                status_code=e.status_code,
            )
            return False

    def dispatch(self, data: dict[str, Any]) -> asyncio.Task:
        """Send in the background. The task is tracked so drain() can await it."""
        task = asyncio.create_task(self.send(data))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight background deliveries."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)
