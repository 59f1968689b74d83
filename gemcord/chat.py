"""Surface-agnostic handling of chat prompts."""

from __future__ import annotations

import json
import logging
from typing import Awaitable, Callable

from gemcord.attachments import data_uri_part
from gemcord.channel_poster import split_message
from gemcord.conversation import ConversationLoop, ConversationResult, ToolNotifier
from gemcord.models import ROLE_USER, ChatMessage, Part, ToolCall, Turn
from gemcord.sessions import SessionStore

LOGGER = logging.getLogger(__name__)

Replier = Callable[[str], Awaitable[None]]

ATTACHMENT_ERROR_REPLY = "Sorry, there was an error processing the attached file."
SEARCH_COMMAND = "/search"
SUMMARIZE_COMMAND = "/summarize"
SEARCH_USAGE_REPLY = "Usage: /search <query>"
EMPTY_SUMMARY_REPLY = "There is nothing to summarize yet."


def format_tool_notification(call: ToolCall) -> str:
    return f"Executing tool: `{call.name}` with args: `{json.dumps(call.args)}`"


def search_prompt(query: str) -> str:
    return (
        f"Search the web for information about: {query}. "
        "Provide a summary of the key findings and relevant links."
    )


def summary_prompt(transcript: str) -> str:
    return (
        "Summarize the following Discord thread. Focus on the key discussion points and decisions made. "
        "Provide a summary that allows someone to quickly understand what was discussed without reading "
        f"the entire thread.\n\nDiscord Thread:\n{transcript}"
    )


def search_query(text: str) -> str | None:
    """Return the query of a `/search` command, or None when `text` is not one."""

    words = text.strip().split(maxsplit=1)
    if not words or words[0] != SEARCH_COMMAND:
        return None
    return words[1].strip() if len(words) > 1 else ""


class ChatHandler:
    """Turns one chat message into a conversation run and replies with the outcome."""

    def __init__(self, conversation: ConversationLoop, sessions: SessionStore, max_message_length: int = 2000) -> None:
        self._conversation = conversation
        self._sessions = sessions
        self._max_message_length = max_message_length

    async def handle(
        self,
        message: ChatMessage,
        reply: Replier,
        notify: ToolNotifier | None = None,
    ) -> ConversationResult | None:
        """Handle one inbound message; returns None when it could not be turned into a prompt."""

        if search_query(message.text) == "":
            await reply(SEARCH_USAGE_REPLY)
            return None
        try:
            user_turn = build_user_turn(message)
        except ValueError as exc:
            LOGGER.warning("Rejected attachment in session %s: %s", message.session_id, exc)
            await reply(ATTACHMENT_ERROR_REPLY)
            return None

        session = self._sessions.get_or_create(message.session_id, replay_history=message.is_thread)
        prior_turns = len(session.history)
        result = await self._conversation.run(
            [*session.history, user_turn],
            session_id=session.session_id,
            notify=notify,
        )
        if result.completed:
            self._sessions.save(session, result.history[prior_turns:])

        await self._send(result, reply)
        return result

    async def summarize(self, session_id: str, transcript: list[str], reply: Replier) -> ConversationResult | None:
        """Summarize earlier channel messages, given oldest first as `author: text` lines."""

        if not transcript:
            await reply(EMPTY_SUMMARY_REPLY)
            return None
        LOGGER.info("Summarizing %d messages for session %s", len(transcript), session_id)
        result = await self._conversation.run(
            [Turn.user_text(summary_prompt("\n".join(transcript)))], session_id=session_id
        )
        await self._send(result, reply)
        return result

    async def _send(self, result: ConversationResult, reply: Replier) -> None:
        for chunk in split_message(result.reply_text, self._max_message_length):
            await reply(chunk)


def build_user_turn(message: ChatMessage) -> Turn:
    prompt = message.text.strip()
    query = search_query(prompt)
    if query:
        prompt = search_prompt(query)
    elif not prompt and message.attachments:
        names = ", ".join(f'"{a.filename}"' for a in message.attachments)
        prompt = f"Analyze the following file named {names}. Focus on its content, structure, and purpose."
    parts = [Part(text=prompt)]
    parts.extend(data_uri_part(attachment.data_uri) for attachment in message.attachments)
    return Turn(role=ROLE_USER, parts=parts)
