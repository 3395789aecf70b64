"""
Access tokens for the Google Calendar API.

Either a static bearer token from configuration, or a service-account JWT
assertion (RS256) exchanged at the OAuth token endpoint and cached until
shortly before it expires.
"""

import asyncio
import time

import httpx
import jwt

from app.config import Settings
from app.infrastructure.observability.logging import get_logger
from app.services.calendar.provider import ProviderConfigurationError, ProviderError

logger = get_logger(__name__)

CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"
ASSERTION_LIFETIME_SECONDS = 3600
REFRESH_MARGIN_SECONDS = 60
TOKEN_REQUEST_TIMEOUT = 15


class GoogleTokenSource:
    """Hands out a valid access token, refreshing service-account tokens as needed."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._client = client
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        """
        Return a bearer token for the Calendar API.

        Raises:
            ProviderConfigurationError: If no credential source is configured
            ProviderError: If the token exchange fails
        """
        if self._settings.GOOGLE_CALENDAR_ACCESS_TOKEN:
            return self._settings.GOOGLE_CALENDAR_ACCESS_TOKEN

        if not self._settings.has_calendar_credentials():
            raise ProviderConfigurationError(
                "Google Calendar credentials are not configured",
                error_code="not_configured",
            )

        async with self._lock:
            if self._token and time.time() < self._expires_at - REFRESH_MARGIN_SECONDS:
                return self._token
            await self._refresh()
            return self._token

    def _build_assertion(self) -> str:
        now = int(time.time())
        claims = {
            "iss": self._settings.GOOGLE_SERVICE_ACCOUNT_EMAIL,
            "scope": CALENDAR_SCOPE,
            "aud": self._settings.GOOGLE_TOKEN_URI,
            "iat": now,
            "exp": now + ASSERTION_LIFETIME_SECONDS,
        }
        try:
            return jwt.encode(claims, self._settings.private_key(), algorithm="RS256")
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            raise ProviderConfigurationError(
                f"Invalid service account private key: {e}", error_code="invalid_key"
            ) from e

    async def _refresh(self) -> None:
        assertion = self._build_assertion()
        data = {
            "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
            "assertion": assertion,
        }

        try:
            if self._client is not None:
                response = await self._client.post(self._settings.GOOGLE_TOKEN_URI, data=data)
            else:
                async with httpx.AsyncClient(timeout=TOKEN_REQUEST_TIMEOUT) as client:
                    response = await client.post(self._settings.GOOGLE_TOKEN_URI, data=data)
        except httpx.HTTPError as e:
            logger.error("Service account token request failed", error=str(e))
            raise ProviderError(f"Token request failed: {e}", error_code="token_request") from e

        if not response.is_success:
            logger.error(
                "Service account token exchange rejected",
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
            )
            raise ProviderConfigurationError(
                "Service account token exchange rejected",
                error_code="token_rejected",
                status_code=response.status_code,
            )

        payload = response.json()
        if not payload.get("access_token"):
            raise ProviderError("Token response missing access_token", error_code="token_format")
        self._token = payload["access_token"]
        self._expires_at = time.time() + int(payload.get("expires_in", ASSERTION_LIFETIME_SECONDS))
        logger.info("Service account token refreshed", expires_in=payload.get("expires_in"))
