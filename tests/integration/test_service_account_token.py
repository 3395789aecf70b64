from urllib.parse import parse_qs

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from app.config import Settings
from app.services.calendar.credentials import CALENDAR_SCOPE, GoogleTokenSource
from app.services.calendar.provider import ProviderConfigurationError

TOKEN_URI = "https://oauth2.googleapis.com/token"


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _settings(rsa_key, escape_newlines=True):
    pem = rsa_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    if escape_newlines:
        pem = pem.replace("\n", "\\n")
    return Settings(
        _env_file=None,
        GOOGLE_CALENDAR_ACCESS_TOKEN=None,
        GOOGLE_SERVICE_ACCOUNT_EMAIL="scheduler@project.iam.gserviceaccount.com",
        GOOGLE_PRIVATE_KEY=pem,
        GOOGLE_TOKEN_URI=TOKEN_URI,
    )


@pytest.mark.asyncio
async def test_static_token_wins():
    source = GoogleTokenSource(Settings(_env_file=None, GOOGLE_CALENDAR_ACCESS_TOKEN="static"))

    assert await source.get_token() == "static"


@pytest.mark.asyncio
async def test_no_credentials_is_configuration_error():
    source = GoogleTokenSource(Settings(_env_file=None, GOOGLE_CALENDAR_ACCESS_TOKEN=None))

    with pytest.raises(ProviderConfigurationError):
        await source.get_token()


@pytest.mark.asyncio
async def test_service_account_exchange_is_cached(httpx_mock, rsa_key):
    httpx_mock.add_response(
        method="POST",
        url=TOKEN_URI,
        json={"access_token": "sa-token", "expires_in": 3600, "token_type": "Bearer"},
    )
    source = GoogleTokenSource(_settings(rsa_key))

    assert await source.get_token() == "sa-token"
    assert await source.get_token() == "sa-token"

    request = httpx_mock.get_request()
    form = parse_qs(request.content.decode())
    assert form["grant_type"] == ["urn:ietf:params:oauth:grant-type:jwt-bearer"]

    claims = jwt.decode(
        form["assertion"][0],
        rsa_key.public_key(),
        algorithms=["RS256"],
        audience=TOKEN_URI,
    )
    assert claims["iss"] == "scheduler@project.iam.gserviceaccount.com"
    assert claims["scope"] == CALENDAR_SCOPE


@pytest.mark.asyncio
async def test_rejected_exchange(httpx_mock, rsa_key):
    httpx_mock.add_response(method="POST", url=TOKEN_URI, status_code=400, json={"error": "invalid_grant"})
    source = GoogleTokenSource(_settings(rsa_key, escape_newlines=False))

    with pytest.raises(ProviderConfigurationError):
        await source.get_token()


@pytest.mark.asyncio
async def test_invalid_private_key():
    settings = Settings(
        _env_file=None,
        GOOGLE_CALENDAR_ACCESS_TOKEN=None,
        GOOGLE_SERVICE_ACCOUNT_EMAIL="scheduler@project.iam.gserviceaccount.com",
        GOOGLE_PRIVATE_KEY="not a key",
    )

    with pytest.raises(ProviderConfigurationError):
        await GoogleTokenSource(settings).get_token()
