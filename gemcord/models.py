"""Core domain models used across layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

ROLE_USER = "user"
ROLE_MODEL = "model"
ROLE_FUNCTION = "function"


@dataclass(slots=True)
class ToolCall:
    """Tool invocation requested by the model."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {"name": self.name, "args": self.args}


@dataclass(slots=True)
class ToolResult:
    """Outcome of one tool invocation, paired with the call that produced it."""

    name: str
    response: dict[str, Any]
    display_summary: str
    succeeded: bool = True
    error_kind: str | None = None

    @classmethod
    def success(cls, name: str, payload: Any, display_summary: str) -> ToolResult:
        response = payload if isinstance(payload, dict) else {"output": payload}
        return cls(name=name, response=response, display_summary=display_summary)

    @classmethod
    def failure(cls, name: str, message: str, error_kind: str = "error") -> ToolResult:
        summary = f'Error executing tool "{name}"'
        return cls(
            name=name,
            response={"errorMessage": message, "displaySummary": summary},
            display_summary=summary,
            succeeded=False,
            error_kind=error_kind,
        )

    def to_wire(self) -> dict[str, Any]:
        return {"name": self.name, "response": self.response}


@dataclass(slots=True)
class InlineData:
    """Base64 payload with its MIME type, sent alongside a prompt."""

    mime_type: str
    data: str


@dataclass(slots=True)
class Part:
    """One element of a conversation turn. Exactly one field is set."""

    text: str | None = None
    inline_data: InlineData | None = None
    tool_call: ToolCall | None = None
    tool_result: ToolResult | None = None

    def to_wire(self) -> dict[str, Any]:
        if self.tool_call is not None:
            return {"functionCall": self.tool_call.to_wire()}
        if self.tool_result is not None:
            return {"functionResponse": self.tool_result.to_wire()}
        if self.inline_data is not None:
            return {"inlineData": {"mimeType": self.inline_data.mime_type, "data": self.inline_data.data}}
        return {"text": self.text or ""}

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Part:
        if "functionCall" in data:
            call = data["functionCall"]
            return cls(tool_call=ToolCall(name=call.get("name", ""), args=call.get("args") or {}))
        if "functionResponse" in data:
            result = data["functionResponse"]
            response = result.get("response") or {}
            return cls(
                tool_result=ToolResult(
                    name=result.get("name", ""),
                    response=response,
                    display_summary=str(response.get("displaySummary", "")),
                    succeeded="errorMessage" not in response,
                )
            )
        if "inlineData" in data:
            inline = data["inlineData"]
            return cls(inline_data=InlineData(mime_type=inline["mimeType"], data=inline["data"]))
        return cls(text=data.get("text", ""))


@dataclass(slots=True)
class Turn:
    """Conversation turn tagged with the role that produced it."""

    role: str
    parts: list[Part]

    @classmethod
    def user_text(cls, text: str) -> Turn:
        return cls(role=ROLE_USER, parts=[Part(text=text)])

    @classmethod
    def model_text(cls, text: str) -> Turn:
        return cls(role=ROLE_MODEL, parts=[Part(text=text)])

    def to_wire(self) -> dict[str, Any]:
        return {"role": self.role, "parts": [part.to_wire() for part in self.parts]}

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Turn:
        return cls(role=data["role"], parts=[Part.from_wire(p) for p in data.get("parts", [])])


@dataclass(slots=True)
class ResponseChunk:
    """One streamed piece of a generation response."""

    text_fragments: list[str] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)


class TriggerType(str, Enum):
    REPO_PUSH = "REPO_PUSH"
    SCHEDULE = "SCHEDULE"


class ActionType(str, Enum):
    PROMPT_GENERATION = "PROMPT_GENERATION"
    CHANNEL_MESSAGE = "CHANNEL_MESSAGE"


@dataclass(slots=True)
class Workflow:
    """Persisted automation rule mapping a trigger to an action."""

    workflow_id: str
    guild_id: str
    workflow_name: str
    trigger_type: TriggerType
    trigger_config: dict[str, str]
    action_type: ActionType
    action_config: dict[str, str]
    created_by: str
    is_enabled: bool
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.workflow_id,
            "guildId": self.guild_id,
            "workflowName": self.workflow_name,
            "triggerType": self.trigger_type.value,
            "triggerConfig": dict(self.trigger_config),
            "actionType": self.action_type.value,
            "actionConfig": dict(self.action_config),
            "createdBy": self.created_by,
            "isEnabled": self.is_enabled,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass(slots=True)
class WebhookEvent:
    """Signed webhook delivery, kept only for one matching pass."""

    signature: str
    raw_body: bytes
    payload: dict[str, Any]
    event_name: str = "push"
    delivery_id: str | None = None


@dataclass(slots=True)
class PushEvent:
    """Attributes derived from a repository push payload."""

    repo: str
    branch: str
    ref: str
    pusher: str = ""
    commits: list[dict[str, Any]] = field(default_factory=list)
    head_commit: dict[str, Any] | None = None
    compare_url: str = ""

    def trigger_attributes(self) -> dict[str, str]:
        return {"repo": self.repo, "branch": self.branch}


@dataclass(slots=True)
class ChatAttachment:
    """File attached to a chat message, already encoded as a data URI."""

    filename: str
    data_uri: str


@dataclass(slots=True)
class ChatMessage:
    """Message normalized by chat adapters for runtime usage."""

    session_id: str
    author_id: str
    text: str
    timestamp: datetime
    is_thread: bool = False
    attachments: list[ChatAttachment] = field(default_factory=list)
