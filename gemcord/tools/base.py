"""Model-callable tool contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class Tool(ABC):
    """A function the model may call by name.

    `parameters_schema` is a JSON-schema object; its `properties` and
    `required` entries become the function declaration sent to Gemini.
    """

    name: str
    description: str
    parameters_schema: dict[str, Any]

    @abstractmethod
    async def run(self, **kwargs: Any) -> Any:
        """Execute with arguments already validated against `parameters_schema`."""

    def declaration(self) -> dict[str, Any]:
        """Gemini function declaration; argument-less tools carry no `parameters`."""

        spec: dict[str, Any] = {"name": self.name, "description": self.description}
        properties = self.parameters_schema.get("properties", {})
        if properties:
            spec["parameters"] = {
                "type": "object",
                "properties": properties,
                "required": list(self.parameters_schema.get("required", [])),
            }
        return spec

    def summarize(self, result: Any) -> str:
        """Short human-readable description of a successful result."""

        return f'Tool "{self.name}" completed'
