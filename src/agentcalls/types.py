"""
Core types for tool-call engines.

These types flow between the streaming client, the engines and the agent
loop. A model turn creates one StreamProcessingState, mutates it chunk by
chunk, and finalizes it into exactly one ParsedModelResponse.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Message roles in the conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FinishReason(str, Enum):
    """Why a model turn ended."""
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"
    FUNCTION_CALL = "function_call"

    @classmethod
    def coerce(cls, value: "str | FinishReason | None") -> "FinishReason | str | None":
        """Map a server value onto the enum, keeping unknown strings as-is."""
        if value is None or isinstance(value, FinishReason):
            return value
        try:
            return cls(value)
        except ValueError:
            return value


@dataclass
class FunctionCall:
    """Name and JSON-encoded arguments of a requested function."""
    name: str
    arguments: str = ""


@dataclass
class ToolCall:
    """
    A request from the model to execute a tool.

    `function.arguments` is JSON text, exactly as it travels over the
    chat-completion wire format.
    """
    id: str
    function: FunctionCall
    type: str = "function"

    @property
    def name(self) -> str:
        return self.function.name

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode the arguments, falling back to the raw text."""
        text = self.function.arguments
        if not text or not text.strip():
            return {}
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError:
            return {"raw": text}
        if isinstance(decoded, dict):
            return decoded
        return {"raw": decoded}

    def to_dict(self) -> dict[str, Any]:
        """Convert to OpenAI API format."""
        return {
            "id": self.id,
            "type": self.type,
            "function": {
                "name": self.function.name,
                "arguments": self.function.arguments,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCall":
        """Create from OpenAI API format."""
        function = data.get("function") or {}
        return cls(
            id=data.get("id", ""),
            type=data.get("type", "function"),
            function=FunctionCall(
                name=function.get("name", ""),
                arguments=function.get("arguments", ""),
            ),
        )


@dataclass
class StreamingToolCallUpdate:
    """Incremental information about a tool call under construction."""
    tool_call_id: str
    tool_name: str
    arguments_delta: str
    is_complete: bool = False


@dataclass
class StreamProcessingState:
    """
    Accumulated state for one streaming model turn.

    The state is owned by a single consumer for the whole turn and has no
    internal locking: never feed chunks for the same state concurrently.
    """
    content_buffer: str = ""
    reasoning_buffer: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: FinishReason | str | None = None


@dataclass
class StreamChunkResult:
    """What a single chunk contributed, for live display."""
    content: str = ""
    reasoning_content: str = ""
    has_tool_call_update: bool = False
    tool_calls: list[ToolCall] = field(default_factory=list)
    streaming_tool_call_updates: list[StreamingToolCallUpdate] | None = None


@dataclass(frozen=True)
class ParsedModelResponse:
    """
    Final result of a model turn.

    Produced once by `ToolCallEngine.finalize` and consumed by the agent
    loop: a non-empty `tool_calls` means dispatch, otherwise `content` is
    the terminal answer.
    """
    content: str
    raw_content: str | None = None
    reasoning_content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    finish_reason: FinishReason | str = FinishReason.STOP

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


@dataclass
class ToolCallResult:
    """
    The result of executing a tool, as multimodal content parts.

    Parts follow the chat-completion content format, e.g.
    {"type": "text", "text": "..."} or {"type": "image_url", ...}.
    """
    tool_call_id: str
    tool_name: str
    content: list[dict[str, Any]] = field(default_factory=list)
    success: bool = True
    error: str | None = None

    @property
    def text(self) -> str:
        """Concatenated text parts."""
        return "".join(
            part.get("text", "") for part in self.content if part.get("type") == "text"
        )


@dataclass
class Message:
    """A single message in the conversation history."""
    role: Role
    content: str | list[dict[str, Any]] | None
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: list[dict[str, Any]] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to OpenAI API format."""
        result: dict[str, Any] = {
            "role": self.role.value,
            "content": self.content,
        }
        if self.name is not None:
            result["name"] = self.name
        if self.tool_call_id is not None:
            result["tool_call_id"] = self.tool_call_id
        if self.tool_calls is not None:
            result["tool_calls"] = self.tool_calls
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        """Create from OpenAI API format."""
        return cls(
            role=Role(data["role"]),
            content=data.get("content", ""),
            name=data.get("name"),
            tool_call_id=data.get("tool_call_id"),
            tool_calls=data.get("tool_calls"),
        )
