"""Application entrypoint."""

from __future__ import annotations

import asyncio
import logging

import uvicorn

from gemcord.channel_poster import DiscordChannelPoster
from gemcord.chat import ChatHandler
from gemcord.config import Settings, load_settings, redact_secret
from gemcord.conversation import ConversationLoop
from gemcord.db import Database
from gemcord.discord_adapter import DiscordAssistant
from gemcord.event_queue import WebhookEventQueue
from gemcord.identity import FirebaseIdentityVerifier
from gemcord.llm.gemini import GeminiProvider
from gemcord.server import create_app
from gemcord.sessions import SqliteSessionStore
from gemcord.tools.read_url_tool import ReadUrlTool
from gemcord.tools.registry import ToolRegistry
from gemcord.tools.time_tool import GetCurrentTimeTool
from gemcord.tools.web_search_tool import WebSearchTool
from gemcord.workflows import WorkflowProcessor

LOGGER = logging.getLogger(__name__)


def _log_configuration(settings: Settings) -> None:
    LOGGER.info("gemcord configuration:")
    LOGGER.info("  Gemini model: %s", settings.gemini_model)
    LOGGER.info("  Gemini API key: %s", redact_secret(settings.gemini_api_key))
    LOGGER.info("  Discord token: %s", redact_secret(settings.discord_token))
    LOGGER.info("  GitHub webhook secret: %s", redact_secret(settings.github_webhook_secret))
    LOGGER.info("  Database path: %s", settings.database_path)
    LOGGER.info("  Max conversation turns: %d", settings.max_conversation_turns)
    LOGGER.info("  HTTP listener: %s:%d", settings.http_host, settings.http_port)


async def run() -> None:
    """Initialize app layers and serve the webhook API and the Discord bot."""

    settings = load_settings()
    logging.getLogger().setLevel(settings.log_level.upper())
    _log_configuration(settings)

    db = Database(settings.database_path)
    db.initialize()

    provider = GeminiProvider(settings)
    tools = ToolRegistry(db, timeout_seconds=settings.tool_timeout_seconds)
    tools.register(WebSearchTool())
    tools.register(ReadUrlTool(settings.jina_api_key))
    tools.register(GetCurrentTimeTool())
    LOGGER.info("Registered tools: %s", ", ".join(tools.names()))

    conversation = ConversationLoop(
        llm=provider,
        tool_registry=tools,
        max_turns=settings.max_conversation_turns,
        request_timeout_seconds=settings.request_timeout_seconds,
    )

    processor = WorkflowProcessor(db=db, conversation=conversation, poster=DiscordChannelPoster(settings))
    event_queue = WebhookEventQueue(processor.process)
    app = create_app(settings, db, event_queue, FirebaseIdentityVerifier(settings))
    server = uvicorn.Server(
        uvicorn.Config(app, host=settings.http_host, port=settings.http_port, log_level=settings.log_level.lower())
    )

    chat = ChatHandler(
        conversation=conversation,
        sessions=SqliteSessionStore(db, history_turns=settings.session_history_turns),
        max_message_length=settings.discord_max_message_length,
    )
    bot = DiscordAssistant(chat)

    queue_task = asyncio.create_task(event_queue.run_forever(), name="webhook-events")
    bot_task = asyncio.create_task(bot.start(settings.discord_token), name="discord-client")
    try:
        await server.serve()
    finally:
        event_queue.stop()
        await bot.close()
        bot_task.cancel()
        await asyncio.gather(queue_task, bot_task, return_exceptions=True)
        LOGGER.info("gemcord shutdown complete")


def main() -> None:
    """Synchronous wrapper for asyncio entrypoint."""

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run())


if __name__ == "__main__":
    main()
