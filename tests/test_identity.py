"""Tests for FirebaseIdentityVerifier."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from gemcord.config import Settings
from gemcord.errors import AuthenticationError, ConfigurationError
from gemcord.identity import FirebaseIdentityVerifier

_CLIENT_PATH = "gemcord.identity.httpx.AsyncClient"


def _settings(firebase_api_key: str = "fb-key") -> Settings:
    return Settings(GEMINI_API_KEY="gemini-key", DISCORD_TOKEN="bot-token", FIREBASE_API_KEY=firebase_api_key)


def _mock_client(status_code: int = 200, data: dict | None = None, error: Exception | None = None) -> AsyncMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = data or {}
    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client.post = AsyncMock(side_effect=error) if error else AsyncMock(return_value=resp)
    return mock_client


def test_verifier_requires_api_key():
    with pytest.raises(ConfigurationError):
        FirebaseIdentityVerifier(_settings(firebase_api_key=""))


@pytest.mark.asyncio
async def test_valid_token_returns_claims():
    mock_client = _mock_client(data={"users": [{"localId": "uid-1", "email": "a@example.com"}]})

    with patch(_CLIENT_PATH, return_value=mock_client):
        claims = await FirebaseIdentityVerifier(_settings()).verify("token")

    assert claims.uid == "uid-1"
    assert claims.email == "a@example.com"
    assert mock_client.post.call_args.kwargs["json"] == {"idToken": "token"}
    assert mock_client.post.call_args.kwargs["params"] == {"key": "fb-key"}


@pytest.mark.asyncio
async def test_rejected_token_raises():
    mock_client = _mock_client(status_code=400, data={"error": {"message": "INVALID_ID_TOKEN"}})

    with patch(_CLIENT_PATH, return_value=mock_client):
        with pytest.raises(AuthenticationError) as excinfo:
            await FirebaseIdentityVerifier(_settings()).verify("token")

    assert excinfo.value.message == "Unauthorized: Invalid token"


@pytest.mark.asyncio
async def test_lookup_without_users_raises():
    with patch(_CLIENT_PATH, return_value=_mock_client(data={"users": []})):
        with pytest.raises(AuthenticationError):
            await FirebaseIdentityVerifier(_settings()).verify("token")


@pytest.mark.asyncio
async def test_unreachable_provider_raises():
    mock_client = _mock_client(error=httpx.ConnectError("down"))

    with patch(_CLIENT_PATH, return_value=mock_client):
        with pytest.raises(AuthenticationError) as excinfo:
            await FirebaseIdentityVerifier(_settings()).verify("token")

    assert excinfo.value.message == "Unauthorized: Could not verify token"


@pytest.mark.asyncio
async def test_empty_token_is_rejected_without_a_request():
    mock_client = _mock_client()

    with patch(_CLIENT_PATH, return_value=mock_client):
        with pytest.raises(AuthenticationError):
            await FirebaseIdentityVerifier(_settings()).verify("")

    mock_client.post.assert_not_called()
