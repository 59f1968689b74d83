"""Verification of dashboard identity tokens."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from gemcord.config import Settings
from gemcord.errors import AuthenticationError, ConfigurationError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IdentityClaims:
    """Identity of a verified caller."""

    uid: str
    email: str | None = None


class FirebaseIdentityVerifier:
    """Checks Firebase ID tokens against the Identity Toolkit `accounts:lookup` API."""

    def __init__(self, settings: Settings) -> None:
        if not settings.firebase_api_key:
            raise ConfigurationError("FIREBASE_API_KEY is not set. Cannot verify identity tokens.")
        self._api_key = settings.firebase_api_key
        self._base_url = settings.identity_toolkit_url
        self._timeout = settings.request_timeout_seconds

    async def verify(self, id_token: str) -> IdentityClaims:
        """Return the caller's claims, or raise AuthenticationError."""

        if not id_token:
            raise AuthenticationError("Unauthorized: Missing token")

        async with httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout) as client:
            try:
                response = await client.post(
                    "/accounts:lookup",
                    params={"key": self._api_key},
                    json={"idToken": id_token},
                )
            except httpx.HTTPError as exc:
                LOGGER.error("Identity provider unreachable: %s", exc)
                raise AuthenticationError("Unauthorized: Could not verify token") from exc

        if response.status_code != 200:
            LOGGER.warning("Error verifying ID token (HTTP %d)", response.status_code)
            raise AuthenticationError("Unauthorized: Invalid token")

        users = response.json().get("users") or []
        if not users or not users[0].get("localId"):
            raise AuthenticationError("Unauthorized: Invalid token")
        user = users[0]
        return IdentityClaims(uid=user["localId"], email=user.get("email"))
