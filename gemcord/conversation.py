"""Multi-turn generation loop with tool execution."""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from gemcord.errors import GenerationError, GenerationTimeoutError
from gemcord.llm.base import LLMProvider
from gemcord.models import ROLE_FUNCTION, ROLE_MODEL, Part, ToolCall, ToolResult, Turn
from gemcord.tools.registry import ToolRegistry

LOGGER = logging.getLogger(__name__)

ToolNotifier = Callable[[ToolCall], Awaitable[None]]


class LoopState(str, Enum):
    AWAITING_RESPONSE = "awaiting_response"
    HAVE_TEXT = "have_text"
    HAVE_TOOL_CALLS = "have_tool_calls"
    EMPTY = "empty"


class LoopOutcome(str, Enum):
    COMPLETED = "completed"
    EMPTY = "empty"
    MAX_TURNS_EXCEEDED = "max_turns_exceeded"
    CANCELLED = "cancelled"
    GENERATION_FAILED = "generation_failed"
    GENERATION_TIMEOUT = "generation_timeout"


_OUTCOME_MESSAGES = {
    LoopOutcome.EMPTY: "Received an empty response from Gemini.",
    LoopOutcome.MAX_TURNS_EXCEEDED: (
        "Sorry, I could not complete that request: it needed too many tool steps."
    ),
    LoopOutcome.CANCELLED: "The request was cancelled.",
    LoopOutcome.GENERATION_FAILED: "Sorry, there was an error processing your request. Please try again.",
    LoopOutcome.GENERATION_TIMEOUT: "Sorry, the request timed out. Please try again.",
}


@dataclass(slots=True)
class ConversationResult:
    """Terminal state of one loop run."""

    outcome: LoopOutcome
    text: str
    history: list[Turn]
    turns: int
    tool_results: list[ToolResult] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.outcome is LoopOutcome.COMPLETED

    @property
    def reply_text(self) -> str:
        """Text to show the user: the answer, or a message describing the outcome."""

        if self.completed:
            return self.text
        return _OUTCOME_MESSAGES[self.outcome]


@dataclass(slots=True)
class TurnResponse:
    """Accumulated output of one generation call."""

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)

    @property
    def state(self) -> LoopState:
        # Text wins when a turn carries both.
        if self.text.strip():
            return LoopState.HAVE_TEXT
        if self.tool_calls:
            return LoopState.HAVE_TOOL_CALLS
        return LoopState.EMPTY


class _GenerationCancelled(Exception):
    pass


class ConversationLoop:
    """Drives generation and tool turns until the model settles on a text answer.

    The loop is stateless between runs: history comes in as an argument and
    the extended history goes out in the result.
    """

    def __init__(
        self,
        llm: LLMProvider,
        tool_registry: ToolRegistry,
        max_turns: int = 8,
        request_timeout_seconds: float = 30.0,
    ) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self._llm = llm
        self._tool_registry = tool_registry
        self._max_turns = max_turns
        self._request_timeout_seconds = request_timeout_seconds
        self._notifications: set[asyncio.Task[Any]] = set()

    async def run(
        self,
        history: list[Turn],
        session_id: str | None = None,
        notify: ToolNotifier | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ConversationResult:
        """Run the loop over `history` (which is not modified)."""

        conversation = list(history)
        tool_results: list[ToolResult] = []
        tool_specs = self._tool_registry.list_tool_specs()

        for turn_number in range(1, self._max_turns + 1):
            try:
                response = await self._next_response(conversation, tool_specs, cancel_event)
            except _GenerationCancelled:
                LOGGER.info("Generation cancelled for session %s on turn %d", session_id, turn_number)
                return ConversationResult(LoopOutcome.CANCELLED, "", conversation, turn_number, tool_results)
            except GenerationTimeoutError as exc:
                LOGGER.warning("Generation timed out for session %s: %s", session_id, exc)
                return ConversationResult(
                    LoopOutcome.GENERATION_TIMEOUT, "", conversation, turn_number, tool_results
                )
            except GenerationError:
                LOGGER.exception("Generation failed for session %s", session_id)
                return ConversationResult(
                    LoopOutcome.GENERATION_FAILED, "", conversation, turn_number, tool_results
                )

            state = response.state
            if state is LoopState.HAVE_TEXT:
                conversation.append(Turn.model_text(response.text))
                return ConversationResult(
                    LoopOutcome.COMPLETED, response.text, conversation, turn_number, tool_results
                )
            if state is LoopState.EMPTY:
                LOGGER.warning("Empty generation response for session %s on turn %d", session_id, turn_number)
                return ConversationResult(LoopOutcome.EMPTY, "", conversation, turn_number, tool_results)

            LOGGER.info(
                "Turn %d requested tools: %s",
                turn_number,
                ", ".join(call.name for call in response.tool_calls),
            )
            if turn_number == self._max_turns:
                # No turn is left to report tool results back to the model.
                break
            if notify is not None:
                for call in response.tool_calls:
                    self._notify_in_background(notify, call)

            results = await self._tool_registry.invoke_batch(response.tool_calls, session_id=session_id)
            conversation.append(Turn(role=ROLE_MODEL, parts=[Part(tool_call=call) for call in response.tool_calls]))
            conversation.append(Turn(role=ROLE_FUNCTION, parts=[Part(tool_result=result) for result in results]))
            tool_results.extend(results)

        LOGGER.warning("Session %s exceeded %d turns without a text answer", session_id, self._max_turns)
        return ConversationResult(
            LoopOutcome.MAX_TURNS_EXCEEDED, "", conversation, self._max_turns, tool_results
        )

    async def _next_response(
        self,
        history: list[Turn],
        tool_specs: list[dict[str, Any]],
        cancel_event: asyncio.Event | None,
    ) -> TurnResponse:
        collector = asyncio.create_task(self._collect(list(history), tool_specs))
        waiters: set[asyncio.Task[Any]] = {collector}
        canceller: asyncio.Task[Any] | None = None
        if cancel_event is not None:
            canceller = asyncio.create_task(cancel_event.wait())
            waiters.add(canceller)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self._request_timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            pending = [task for task in waiters if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if collector in done:
            return collector.result()
        if canceller is not None and canceller in done:
            raise _GenerationCancelled()
        raise GenerationTimeoutError(
            f"Generation exceeded {self._request_timeout_seconds:g} seconds"
        )

    async def _collect(self, history: list[Turn], tool_specs: list[dict[str, Any]]) -> TurnResponse:
        response = TurnResponse()
        fragments: list[str] = []
        stream = self._llm.stream(history, tools=tool_specs or None)
        async with aclosing(stream):
            async for chunk in stream:
                fragments.extend(chunk.text_fragments)
                response.tool_calls.extend(chunk.tool_calls)
        response.text = "".join(fragments)
        return response

    def _notify_in_background(self, notify: ToolNotifier, call: ToolCall) -> None:
        task = asyncio.create_task(notify(call))
        self._notifications.add(task)
        task.add_done_callback(self._notification_done)

    def _notification_done(self, task: asyncio.Task[Any]) -> None:
        self._notifications.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning("Tool notification failed: %s", exc)
