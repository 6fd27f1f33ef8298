"""
Tool Call Engine - how tool calls get in and out of a model.

Some models support native function calling, others only see tools as
text in the system prompt and answer with tagged text. An engine hides
that difference from the agent loop:

1. prepare_prompt / prepare_request shape what is sent to the model
2. init_state / process_chunk accumulate the streamed reply
3. finalize turns the accumulated reply into a ParsedModelResponse
4. build_historical_* turn the turn and its tool results back into
   messages for the next request

Engines are stateless; all per-turn state lives in the state object.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from agentcalls.tools import Tool
from agentcalls.types import (
    FinishReason,
    ParsedModelResponse,
    Role,
    StreamChunkResult,
    StreamProcessingState,
    ToolCallResult,
)

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7


@dataclass
class PrepareRequestContext:
    """Inputs for building one chat-completion request."""
    model: str
    messages: list[dict[str, Any]]
    tools: list[Tool] = field(default_factory=list)
    temperature: float = DEFAULT_TEMPERATURE
    top_p: float | None = None


class ToolCallEngine(ABC):
    """Base class for all tool call engines."""

    name: str = "base"

    @abstractmethod
    def prepare_prompt(self, instructions: str, tools: list[Tool]) -> str:
        """Return the system prompt to send, given the agent's instructions."""

    @abstractmethod
    def prepare_request(self, context: PrepareRequestContext) -> dict[str, Any]:
        """Build the chat-completion request body."""

    def init_state(self) -> StreamProcessingState:
        """Create a fresh state for one model turn."""
        return StreamProcessingState()

    @abstractmethod
    def process_chunk(
        self,
        chunk: dict[str, Any],
        state: StreamProcessingState,
    ) -> StreamChunkResult:
        """Fold one streamed chunk into the state."""

    @abstractmethod
    def finalize(self, state: StreamProcessingState) -> ParsedModelResponse:
        """Produce the final response for a completed turn."""

    @abstractmethod
    def build_historical_assistant_message(
        self,
        response: ParsedModelResponse,
    ) -> dict[str, Any]:
        """Assistant message to keep in history for this turn."""

    @abstractmethod
    def build_historical_tool_call_result_messages(
        self,
        results: list[ToolCallResult],
    ) -> list[dict[str, Any]]:
        """Messages that report tool results back to the model."""


def chunk_choice(chunk: Any) -> dict[str, Any]:
    """First choice of a streamed chunk, or {} when there is none."""
    if not isinstance(chunk, dict):
        return {}
    choices = chunk.get("choices")
    if not choices or not isinstance(choices, list):
        return {}
    first = choices[0]
    return first if isinstance(first, dict) else {}


def chunk_delta(chunk: Any) -> dict[str, Any]:
    delta = chunk_choice(chunk).get("delta")
    return delta if isinstance(delta, dict) else {}


def chunk_finish_reason(chunk: Any) -> FinishReason | str | None:
    return FinishReason.coerce(chunk_choice(chunk).get("finish_reason"))


def text_tool_result_messages(results: list[ToolCallResult]) -> list[dict[str, Any]]:
    """
    Tool results as user messages.

    Engines that describe tools in the prompt cannot use role=tool, so the
    results go back as plain user text.
    """
    return [
        {
            "role": Role.USER.value,
            "content": f'Tool "{result.tool_name}" result:\n{result.text}',
        }
        for result in results
    ]


def native_tool_result_messages(results: list[ToolCallResult]) -> list[dict[str, Any]]:
    """
    Tool results as role=tool messages keyed by tool_call_id.

    Tool messages only carry text, so image parts are forwarded in a
    follow-up user message.
    """
    messages: list[dict[str, Any]] = []
    for result in results:
        messages.append({
            "role": Role.TOOL.value,
            "tool_call_id": result.tool_call_id,
            "content": result.text,
        })
        images = [part for part in result.content if part.get("type") == "image_url"]
        if images:
            messages.append({"role": Role.USER.value, "content": images})
    return messages
