"""Data types for chat-completion requests and tool results."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


class McpError(Exception):
    """An error reported by a tool, carrying a message."""

    def __init__(self, message: object) -> None:
        self.message = str(message)
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message}


def _require(data: Mapping[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValueError(f"missing field `{key}`") from None


@dataclass
class Message:
    """One chat message with its role."""

    role: str
    content: str

    @classmethod
    def system(cls, content: object) -> Message:
        return cls("system", str(content))

    @classmethod
    def user(cls, content: object) -> Message:
        return cls("user", str(content))

    @classmethod
    def assistant(cls, content: object) -> Message:
        return cls("assistant", str(content))

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Message:
        return cls(str(_require(data, "role")), str(_require(data, "content")))


@dataclass
class Tool:
    """A tool definition offered to the model."""

    name: str
    description: str
    parameters: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Tool:
        return cls(
            str(_require(data, "name")),
            str(_require(data, "description")),
            _require(data, "parameters"),
        )


@dataclass
class CompletionRequest:
    """A chat-completion request; unset optional fields are left out."""

    model: str
    messages: list[Message]
    temperature: float | None = None
    tools: list[Tool] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "model": self.model,
            "messages": [message.to_dict() for message in self.messages],
        }
        if self.temperature is not None:
            data["temperature"] = self.temperature
        if self.tools is not None:
            data["tools"] = [tool.to_dict() for tool in self.tools]
        return data


@dataclass
class Choice:
    """One completion alternative."""

    index: int
    message: Message
    finish_reason: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Choice:
        return cls(
            int(_require(data, "index")),
            Message.from_dict(_require(data, "message")),
            str(_require(data, "finish_reason")),
        )


@dataclass
class CompletionResponse:
    """A chat-completion response."""

    id: str
    object: str
    created: int
    model: str
    choices: list[Choice] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CompletionResponse:
        return cls(
            id=str(_require(data, "id")),
            object=str(_require(data, "object")),
            created=int(_require(data, "created")),
            model=str(_require(data, "model")),
            choices=[Choice.from_dict(choice) for choice in _require(data, "choices")],
        )


@dataclass
class ToolCall:
    """A request from the model to run a tool."""

    name: str
    arguments: Any


@dataclass
class Content:
    """A typed piece of tool output."""

    content_type: str
    body: str

    @classmethod
    def text(cls, content: object) -> Content:
        return cls("text/plain", str(content))

    def to_dict(self) -> dict[str, Any]:
        return {"content_type": self.content_type, "body": self.body}


@dataclass
class ToolResult:
    """Whether a tool succeeded, and what it produced."""

    success: bool
    contents: list[Content] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "contents": [content.to_dict() for content in self.contents],
        }