"""Tests for the Gemini stream decoding."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from gemcord.config import Settings
from gemcord.errors import GenerationError
from gemcord.llm.gemini import GeminiProvider, chunk_from_payload, parse_sse_line
from gemcord.models import ToolCall, Turn


def _sse(data: dict) -> str:
    return f"data: {json.dumps(data)}"


def test_parse_sse_line_ignores_non_data_lines():
    assert parse_sse_line("") is None
    assert parse_sse_line(": keep-alive") is None
    assert parse_sse_line("event: message") is None
    assert parse_sse_line("data:") is None


def test_parse_sse_line_skips_undecodable_json():
    assert parse_sse_line("data: {not json") is None


def test_text_parts_become_fragments():
    line = _sse({"candidates": [{"content": {"role": "model", "parts": [{"text": "Hel"}, {"text": "lo"}]}}]})

    chunk = parse_sse_line(line)

    assert chunk is not None
    assert chunk.text_fragments == ["Hel", "lo"]
    assert chunk.tool_calls == []


def test_function_calls_are_extracted():
    chunk = chunk_from_payload(
        {
            "candidates": [
                {
                    "content": {
                        "parts": [
                            {"functionCall": {"name": "web_search", "args": {"query": "x"}}},
                            {"functionCall": {"name": "get_current_time"}},
                        ]
                    },
                    "finishReason": "STOP",
                }
            ]
        }
    )

    assert chunk.tool_calls == [
        ToolCall(name="web_search", args={"query": "x"}),
        ToolCall(name="get_current_time", args={}),
    ]
    assert chunk.text_fragments == []


def test_thought_parts_are_skipped():
    chunk = chunk_from_payload(
        {"candidates": [{"content": {"parts": [{"text": "thinking...", "thought": True}, {"text": "answer"}]}}]}
    )
    assert chunk.text_fragments == ["answer"]


def test_blocked_prompt_yields_empty_chunk():
    chunk = chunk_from_payload({"promptFeedback": {"blockReason": "SAFETY"}})
    assert chunk.text_fragments == []
    assert chunk.tool_calls == []


def test_stream_error_payload_raises():
    with pytest.raises(GenerationError):
        chunk_from_payload({"error": {"code": 429, "message": "Resource exhausted"}})


def test_string_error_payload_raises_generation_error():
    with pytest.raises(GenerationError) as excinfo:
        parse_sse_line('data: {"error": "Resource has been exhausted"}')

    assert "Resource has been exhausted" in excinfo.value.message


@pytest.mark.parametrize("line", ["data: []", 'data: "text"', "data: 42"])
def test_non_object_payload_raises_generation_error(line):
    with pytest.raises(GenerationError):
        parse_sse_line(line)


def _rate_limited_client() -> AsyncMock:
    response = MagicMock()
    response.status_code = 429
    response.aread = AsyncMock(return_value=b'{"error": {"code": 429}}')
    stream_ctx = MagicMock()
    stream_ctx.__aenter__ = AsyncMock(return_value=response)
    stream_ctx.__aexit__ = AsyncMock(return_value=False)

    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client.stream = MagicMock(return_value=stream_ctx)
    return mock_client


@pytest.mark.asyncio
async def test_rate_limit_retries_stop_within_request_timeout():
    settings = Settings(GEMINI_API_KEY="gemini-key", DISCORD_TOKEN="bot-token", REQUEST_TIMEOUT_SECONDS=30)
    mock_client = _rate_limited_client()
    sleep = AsyncMock()

    with patch("gemcord.llm.gemini.httpx.AsyncClient", return_value=mock_client), patch(
        "gemcord.llm.gemini.asyncio.sleep", sleep
    ):
        with pytest.raises(GenerationError) as excinfo:
            async for _ in GeminiProvider(settings).stream([Turn.user_text("hi")]):
                pass

    assert "rate limited" in excinfo.value.message
    assert [call.args[0] for call in sleep.await_args_list] == [5, 15]
    assert mock_client.stream.call_count == 3
