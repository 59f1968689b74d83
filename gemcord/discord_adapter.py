"""discord.py client feeding chat messages into the chat handler."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

import discord

from gemcord.attachments import encode_data_uri
from gemcord.chat import ATTACHMENT_ERROR_REPLY, SUMMARIZE_COMMAND, ChatHandler, format_tool_notification
from gemcord.models import ChatAttachment, ChatMessage, ToolCall

LOGGER = logging.getLogger(__name__)

GENERIC_ERROR_REPLY = "Sorry, there was an error processing your request. Please try again."
SUMMARY_HISTORY_LIMIT = 100


def strip_bot_mention(content: str, bot_id: int) -> tuple[bool, str]:
    """Return (mentioned, prompt) where prompt has a leading bot mention removed."""

    content = content.strip()
    for mention in (f"<@{bot_id}>", f"<@!{bot_id}>"):
        if content.startswith(mention):
            return True, content[len(mention):].strip()
    return False, content


class DiscordAssistant(discord.Client):
    """Answers mentions, thread messages and direct messages."""

    def __init__(self, chat_handler: ChatHandler) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        intents.messages = True
        intents.guilds = True
        intents.dm_messages = True
        super().__init__(intents=intents)
        self._chat = chat_handler

    async def on_ready(self) -> None:
        LOGGER.info("Discord client logged in as %s", self.user)

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or self.user is None:
            return

        is_thread = isinstance(message.channel, discord.Thread)
        is_dm = message.guild is None
        mentioned, prompt = strip_bot_mention(message.content, self.user.id)
        if not (is_thread or mentioned or is_dm):
            return
        if not prompt and not message.attachments:
            return
        if prompt == "/ping" and is_dm:
            await message.reply("Pong!")
            return
        if prompt == SUMMARIZE_COMMAND:
            await self._guarded(message, lambda: self._summarize(message))
            return

        try:
            attachments = [
                ChatAttachment(
                    filename=attachment.filename,
                    data_uri=encode_data_uri(await attachment.read(), attachment.content_type),
                )
                for attachment in message.attachments
            ]
        except discord.HTTPException as exc:
            LOGGER.warning("Could not download attachment for message %s: %s", message.id, exc)
            await message.reply(ATTACHMENT_ERROR_REPLY)
            return

        chat_message = ChatMessage(
            session_id=str(message.channel.id),
            author_id=str(message.author.id),
            text=prompt,
            timestamp=message.created_at,
            is_thread=is_thread,
            attachments=attachments,
        )

        async def notify(call: ToolCall) -> None:
            await message.channel.send(format_tool_notification(call))

        async def reply(text: str) -> None:
            await message.reply(text)

        await self._guarded(message, lambda: self._chat.handle(chat_message, reply=reply, notify=notify))

    async def _summarize(self, message: discord.Message) -> None:
        transcript = [
            f"{earlier.author.display_name}: {earlier.content}"
            async for earlier in message.channel.history(limit=SUMMARY_HISTORY_LIMIT, before=message)
            if earlier.content
        ]
        # History arrives newest first.
        transcript.reverse()

        async def reply(text: str) -> None:
            await message.reply(text)

        await self._chat.summarize(str(message.channel.id), transcript, reply)

    async def _guarded(self, message: discord.Message, work: Callable[[], Awaitable[Any]]) -> None:
        try:
            async with message.channel.typing():
                await work()
        except Exception:  # noqa: BLE001
            LOGGER.exception("Error processing message %s", message.id)
            await message.reply(GENERIC_ERROR_REPLY)
