"""Delivery of generated text to Discord channels."""

from __future__ import annotations

import logging

import httpx

from gemcord.config import Settings
from gemcord.errors import DeliveryError

LOGGER = logging.getLogger(__name__)


def split_message(text: str, limit: int) -> list[str]:
    """Split `text` into consecutive pieces of at most `limit` characters."""

    if limit < 1:
        raise ValueError("limit must be positive")
    return [text[start:start + limit] for start in range(0, len(text), limit)]


class DiscordChannelPoster:
    """Posts messages through the Discord REST API using the bot token."""

    def __init__(self, settings: Settings) -> None:
        self._token = settings.discord_token
        self._api_base = settings.discord_api_base
        self._max_length = settings.discord_max_message_length
        self._timeout = settings.request_timeout_seconds

    async def post(self, channel_id: str, text: str) -> None:
        """Post `text` to a channel, split into ordered message-sized chunks.

        Raises:
            DeliveryError: Discord rejected a chunk or could not be reached.
                Chunks already sent stay sent; nothing is retried.
        """
        chunks = split_message(text, self._max_length)
        if not chunks:
            LOGGER.info("Nothing to post to channel %s", channel_id)
            return

        async with httpx.AsyncClient(base_url=self._api_base, timeout=self._timeout) as client:
            for index, chunk in enumerate(chunks, start=1):
                try:
                    response = await client.post(
                        f"/channels/{channel_id}/messages",
                        headers={
                            "Authorization": f"Bot {self._token}",
                            "Content-Type": "application/json",
                        },
                        json={"content": chunk},
                    )
                except httpx.HTTPError as exc:
                    raise DeliveryError(f"Failed to reach Discord: {exc}", channel_id) from exc
                if response.status_code >= 400:
                    LOGGER.error(
                        "Discord rejected message %d/%d for channel %s: %s",
                        index,
                        len(chunks),
                        channel_id,
                        response.text[:500],
                    )
                    raise DeliveryError(
                        f"Discord API error: {response.status_code}",
                        channel_id,
                        status_code=response.status_code,
                    )
        LOGGER.info("Posted %d message(s) to channel %s", len(chunks), channel_id)
