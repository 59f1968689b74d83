"""DuckDuckGo web search tool."""

from __future__ import annotations

import asyncio
from typing import Any

from ddgs import DDGS

from gemcord.tools.base import Tool


class WebSearchTool(Tool):
    """Search the web using DuckDuckGo (no API key required)."""

    name = "web_search"
    description = (
        "Search the web. Returns the title, URL and a text snippet for each "
        "result. Use this when you need current information, facts, or "
        "anything not in your training data."
    )
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "The search query."},
            "limit": {
                "type": "integer",
                "description": "Max results to return (default 5, max 20).",
            },
        },
        "required": ["query"],
    }

    async def run(self, **kwargs: Any) -> dict[str, Any]:
        query = str(kwargs["query"]).strip()
        if not query:
            raise ValueError("Search query is missing.")
        limit = min(int(kwargs.get("limit") or 5), 20)

        results = await asyncio.to_thread(
            lambda: DDGS().text(query, max_results=limit, backend="duckduckgo")
        )

        return {
            "query": query,
            "results": [
                {"title": r.get("title", ""), "url": r.get("href", ""), "snippet": r.get("body", "")}
                for r in results or []
            ],
        }

    def summarize(self, result: Any) -> str:
        count = len(result.get("results", []))
        return f"Found {count} results for '{result.get('query', '')}'"
