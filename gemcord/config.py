"""Application configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings validated at startup."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    gemini_api_key: str = Field(..., alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-1.5-flash", alias="GEMINI_MODEL")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        alias="GEMINI_BASE_URL",
    )
    discord_token: str = Field(..., alias="DISCORD_TOKEN")
    discord_api_base: str = Field(default="https://discord.com/api/v10", alias="DISCORD_API_BASE")
    # Hard protocol limit of a single Discord message.
    discord_max_message_length: int = Field(default=2000, alias="DISCORD_MAX_MESSAGE_LENGTH")
    # Empty values are rejected when the HTTP app is built, not here, so the
    # chat bot alone can still be configured without them.
    github_webhook_secret: str = Field(default="", alias="GITHUB_WEBHOOK_SECRET")
    firebase_api_key: str = Field(default="", alias="FIREBASE_API_KEY")
    identity_toolkit_url: str = Field(
        default="https://identitytoolkit.googleapis.com/v1",
        alias="IDENTITY_TOOLKIT_URL",
    )
    jina_api_key: str = Field(default="", alias="JINA_API_KEY")
    database_path: Path = Field(default=Path("gemcord.db"), alias="DATABASE_PATH")
    request_timeout_seconds: float = Field(default=30.0, alias="REQUEST_TIMEOUT_SECONDS")
    tool_timeout_seconds: float = Field(default=20.0, alias="TOOL_TIMEOUT_SECONDS")
    max_conversation_turns: int = Field(default=8, alias="MAX_CONVERSATION_TURNS")
    session_history_turns: int = Field(default=50, alias="SESSION_HISTORY_TURNS")
    http_host: str = Field(default="0.0.0.0", alias="HTTP_HOST")
    http_port: int = Field(default=8080, alias="HTTP_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()


def redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)
