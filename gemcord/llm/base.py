"""LLM provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from gemcord.models import ResponseChunk, Turn


class LLMProvider(ABC):
    """Abstract streaming model provider used by the conversation loop."""

    @abstractmethod
    def stream(
        self,
        history: list[Turn],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[ResponseChunk]:
        """Stream response chunks for the given conversation history.

        Implementations are async generators; closing the generator aborts
        the underlying request.
        """
