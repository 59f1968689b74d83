"""Registry for tool registration and failure-isolated execution."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError, create_model

from gemcord.db import Database
from gemcord.models import ToolCall, ToolResult
from gemcord.tools.base import Tool

LOGGER = logging.getLogger(__name__)


class ToolRegistry:
    """Name-to-tool lookup table populated at startup.

    `invoke` never raises for tool problems: unknown names, invalid
    arguments, tool exceptions and timeouts all come back as failure
    results so the model can be told about them on the next turn.
    """

    def __init__(self, db: Database, timeout_seconds: float = 20.0) -> None:
        self._db = db
        self._timeout_seconds = timeout_seconds
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def names(self) -> list[str]:
        return list(self._tools)

    def list_tool_specs(self) -> list[dict[str, Any]]:
        return [tool.declaration() for tool in self._tools.values()]

    async def invoke(self, tool_name: str, arguments: dict[str, Any], session_id: str | None = None) -> ToolResult:
        tool = self._tools.get(tool_name)
        if tool is None:
            LOGGER.warning("Model requested unknown tool %r", tool_name)
            result = ToolResult.failure(
                tool_name, f"Tool '{tool_name}' not found or not implemented.", error_kind="unknown_tool"
            )
            self._db.log_tool_execution(session_id, tool_name, arguments, result.response, succeeded=False)
            return result

        try:
            validated = _validate_json_schema(tool.parameters_schema, arguments)
        except ValueError as exc:
            result = ToolResult.failure(tool_name, str(exc), error_kind="invalid_arguments")
            self._db.log_tool_execution(session_id, tool_name, arguments, result.response, succeeded=False)
            return result

        LOGGER.info("Running tool %s with args %r", tool_name, validated)
        try:
            output = await asyncio.wait_for(tool.run(**validated), timeout=self._timeout_seconds)
        except asyncio.TimeoutError:
            LOGGER.warning("Tool %s timed out after %.1fs", tool_name, self._timeout_seconds)
            result = ToolResult.failure(
                tool_name,
                f'Tool "{tool_name}" timed out after {self._timeout_seconds:g} seconds.',
                error_kind="timeout",
            )
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Tool %s failed", tool_name)
            result = ToolResult.failure(tool_name, f'Error executing tool "{tool_name}": {exc}')
        else:
            result = ToolResult.success(tool_name, output, display_summary=tool.summarize(output))

        self._db.log_tool_execution(session_id, tool_name, validated, result.response, succeeded=result.succeeded)
        return result

    async def invoke_batch(self, calls: list[ToolCall], session_id: str | None = None) -> list[ToolResult]:
        """Run all calls of one turn concurrently; results keep call order."""

        results = await asyncio.gather(*(self.invoke(call.name, call.args, session_id) for call in calls))
        return list(results)


def _validate_json_schema(schema: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    props = schema.get("properties", {})
    required = set(schema.get("required", []))
    fields: dict[str, tuple[type[Any], Any]] = {}
    for name, config in props.items():
        typ = _python_type(config.get("type", "string"))
        default = ... if name in required else None
        fields[name] = (typ, default)

    model = create_model("ToolInputModel", **fields)
    try:
        value = model(**payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid input for tool: {exc}") from exc
    return value.model_dump(exclude_none=True)


def _python_type(schema_type: str) -> type[Any]:
    mapping: dict[str, type[Any]] = {
        "string": str,
        "integer": int,
        "number": float,
        "boolean": bool,
        "object": dict,
        "array": list,
    }
    return mapping.get(schema_type, str)
