"""Error hierarchy shared across layers."""

from __future__ import annotations

from typing import Any


class GemcordError(Exception):
    """Base error for all gemcord exceptions."""

    code = "GEMCORD_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(GemcordError):
    """Required configuration is missing or unusable."""

    code = "CONFIGURATION"


class AuthenticationError(GemcordError):
    """Caller identity or request signature could not be verified."""

    code = "UNAUTHORIZED"


class WorkflowValidationError(GemcordError, ValueError):
    """Workflow definition is missing required trigger or action fields."""

    code = "INVALID_WORKFLOW"

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message, {"missing": missing or []})
        self.missing = missing or []


class GenerationError(GemcordError):
    """The generation backend failed to produce a response."""

    code = "GENERATION_FAILED"


class GenerationTimeoutError(GenerationError):
    """A generation call exceeded its time budget."""

    code = "GENERATION_TIMEOUT"


class DeliveryError(GemcordError):
    """A message could not be delivered to its destination channel."""

    code = "DELIVERY_FAILED"

    def __init__(self, message: str, channel_id: str, status_code: int | None = None) -> None:
        super().__init__(message, {"channel_id": channel_id, "status_code": status_code})
        self.channel_id = channel_id
        self.status_code = status_code
