"""
Prompt-engineering engine - tool calls as <tool_call> JSON in plain text.

For models without native function calling the tools are described in
the system prompt and the model answers with

    <tool_call>
    {"name": "tool_name", "parameters": {...}}
    </tool_call>

Unlike the tagged formats handled after the stream ends, this tag is
parsed while streaming by a small character-level state machine, so the
UI can show normal text immediately and watch tool arguments arrive:

    normal --'<'--> possible_tag_start --'<tool_call>'--> collecting_tool_call
    collecting_tool_call --'<'--> possible_tag_end --'</tool_call>'--> normal

A partial tag that stops matching is released back as ordinary text.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from agentcalls.engine import (
    PrepareRequestContext,
    ToolCallEngine,
    chunk_delta,
    chunk_finish_reason,
    text_tool_result_messages,
)
from agentcalls.normalizer import (
    IdFactory,
    ToolCallFormatError,
    encode_arguments,
    generate_tool_call_id,
    normalize_tool_call,
)
from agentcalls.tools import Tool
from agentcalls.types import (
    FinishReason,
    FunctionCall,
    ParsedModelResponse,
    Role,
    StreamChunkResult,
    StreamingToolCallUpdate,
    StreamProcessingState,
    ToolCall,
    ToolCallResult,
)

logger = logging.getLogger(__name__)

OPEN_TAG = "<tool_call>"
CLOSE_TAG = "</tool_call>"

NORMAL = "normal"
POSSIBLE_TAG_START = "possible_tag_start"
COLLECTING_TOOL_CALL = "collecting_tool_call"
POSSIBLE_TAG_END = "possible_tag_end"

TOOL_NAME_PATTERN = re.compile(r'"name"\s*:\s*"([^"]+)"')
PARAMETERS_START_PATTERN = re.compile(r'"parameters"\s*:\s*\{')
TOOL_CALL_BLOCK_PATTERN = re.compile(r"<tool_call>(.*?)</tool_call>", re.DOTALL)

TOOL_CALL_INSTRUCTIONS = """To use a tool, your response MUST use the following format, you need to ensure that it is a valid JSON string:

<tool_call>
{
  "name": "tool_name",
  "parameters": {
    "param1": "value1",
    "param2": "value2"
  }
}
</tool_call>

If you want to provide a final answer without using tools, respond in a conversational manner WITHOUT using the tool_call format.

When you receive tool results, they will be provided in a user message. Use these results to continue your reasoning or provide a final answer.
"""


@dataclass
class PromptStreamState(StreamProcessingState):
    """Stream state plus the tag-parsing state machine."""
    parser_state: str = NORMAL
    partial_tag_buffer: str = ""
    normal_content_buffer: str = ""
    tool_call_buffer: str = ""
    tool_name_extracted: bool = False
    emitting_parameters: bool = False
    current_tool_name: str = ""
    current_tool_call_id: str = ""

    def reset_tool_call(self) -> None:
        self.tool_call_buffer = ""
        self.tool_name_extracted = False
        self.emitting_parameters = False
        self.current_tool_name = ""
        self.current_tool_call_id = ""


class PromptEngineeringToolCallEngine(ToolCallEngine):
    """Engine that teaches the model a <tool_call> text format."""

    name = "prompt_engineering"

    def __init__(self, id_factory: IdFactory = generate_tool_call_id) -> None:
        self.id_factory = id_factory

    def prepare_prompt(self, instructions: str, tools: list[Tool]) -> str:
        if not tools:
            return instructions

        logger.info(f"Preparing prompt with {len(tools)} tools")
        tools_description = "\n\n".join(self._describe_tool(tool) for tool in tools)

        return (
            f"{instructions}\n\n"
            f"You have access to the following tools:\n\n"
            f"{tools_description}\n\n"
            f"{TOOL_CALL_INSTRUCTIONS}"
        )

    @staticmethod
    def _describe_tool(tool: Tool) -> str:
        properties = tool.parameters.get("properties") or {}
        required = tool.parameters.get("required") or []

        lines = []
        for name, prop in properties.items():
            marker = " (required)" if name in required else ""
            description = prop.get("description") or "No description"
            lines.append(f"- {name}{marker}: {description} (type: {prop.get('type')})")
        params = "\n".join(lines) or "No parameters required"

        return f"## {tool.name}\n\nDescription: {tool.description}\n\nParameters:\n{params}"

    def prepare_request(self, context: PrepareRequestContext) -> dict[str, Any]:
        logger.debug(f"Preparing request for model: {context.model}")
        # Tools are already described in the system prompt.
        return {
            "model": context.model,
            "messages": context.messages,
            "temperature": context.temperature,
            "stream": True,
        }

    def init_state(self) -> PromptStreamState:
        return PromptStreamState()

    def process_chunk(
        self,
        chunk: dict[str, Any],
        state: PromptStreamState,
    ) -> StreamChunkResult:
        delta = chunk_delta(chunk)

        finish_reason = chunk_finish_reason(chunk)
        if finish_reason:
            state.finish_reason = finish_reason

        reasoning = delta.get("reasoning_content") or ""
        if reasoning:
            state.reasoning_buffer += reasoning

        content = ""
        updates: list[StreamingToolCallUpdate] = []
        new_content = delta.get("content") or ""
        if new_content:
            state.content_buffer += new_content
            content = self._feed(new_content, state, updates)

        return StreamChunkResult(
            content=content,
            reasoning_content=reasoning,
            has_tool_call_update=bool(updates),
            tool_calls=state.tool_calls,
            streaming_tool_call_updates=updates or None,
        )

    def _feed(
        self,
        text: str,
        state: PromptStreamState,
        updates: list[StreamingToolCallUpdate],
    ) -> str:
        """Run the state machine over new text; returns the visible text."""
        output: list[str] = []

        for char in text:
            if state.parser_state == NORMAL:
                if char == "<":
                    state.parser_state = POSSIBLE_TAG_START
                    state.partial_tag_buffer = char
                else:
                    state.normal_content_buffer += char
                    output.append(char)

            elif state.parser_state == POSSIBLE_TAG_START:
                state.partial_tag_buffer += char
                if state.partial_tag_buffer == OPEN_TAG:
                    state.parser_state = COLLECTING_TOOL_CALL
                    state.partial_tag_buffer = ""
                    state.reset_tool_call()
                elif not OPEN_TAG.startswith(state.partial_tag_buffer):
                    released = state.partial_tag_buffer
                    state.partial_tag_buffer = ""
                    state.parser_state = NORMAL
                    if char == "<":
                        released = released[:-1]
                        state.parser_state = POSSIBLE_TAG_START
                        state.partial_tag_buffer = char
                    state.normal_content_buffer += released
                    output.append(released)

            elif state.parser_state == COLLECTING_TOOL_CALL:
                if char == "<":
                    state.parser_state = POSSIBLE_TAG_END
                    state.partial_tag_buffer = char
                else:
                    self._collect(char, state, updates)

            elif state.parser_state == POSSIBLE_TAG_END:
                state.partial_tag_buffer += char
                if state.partial_tag_buffer == CLOSE_TAG:
                    completed = self._complete_tool_call(state)
                    if completed:
                        updates.append(completed)
                    state.parser_state = NORMAL
                    state.partial_tag_buffer = ""
                    state.reset_tool_call()
                elif not CLOSE_TAG.startswith(state.partial_tag_buffer):
                    released = state.partial_tag_buffer
                    state.partial_tag_buffer = ""
                    state.parser_state = COLLECTING_TOOL_CALL
                    if char == "<":
                        released = released[:-1]
                        state.parser_state = POSSIBLE_TAG_END
                        state.partial_tag_buffer = char
                    self._collect(released, state, updates)

        return "".join(output)

    def _collect(
        self,
        text: str,
        state: PromptStreamState,
        updates: list[StreamingToolCallUpdate],
    ) -> None:
        """Add text to the current tool call and stream argument deltas."""
        state.tool_call_buffer += text

        if not state.tool_name_extracted:
            match = TOOL_NAME_PATTERN.search(state.tool_call_buffer)
            if match:
                state.tool_name_extracted = True
                state.current_tool_name = match.group(1)
                state.current_tool_call_id = self.id_factory()
                updates.append(StreamingToolCallUpdate(
                    tool_call_id=state.current_tool_call_id,
                    tool_name=state.current_tool_name,
                    arguments_delta="",
                ))

        if not state.tool_name_extracted:
            return

        if state.emitting_parameters:
            updates.append(StreamingToolCallUpdate(
                tool_call_id=state.current_tool_call_id,
                tool_name=state.current_tool_name,
                arguments_delta=text,
            ))
            return

        start = PARAMETERS_START_PATTERN.search(state.tool_call_buffer)
        if start:
            state.emitting_parameters = True
            updates.append(StreamingToolCallUpdate(
                tool_call_id=state.current_tool_call_id,
                tool_name=state.current_tool_name,
                arguments_delta=state.tool_call_buffer[start.end() - 1:],
            ))

    def _complete_tool_call(self, state: PromptStreamState) -> StreamingToolCallUpdate | None:
        try:
            data = json.loads(state.tool_call_buffer.strip())
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse tool call JSON: {e}")
            return None
        if not isinstance(data, dict) or not data.get("name"):
            logger.error(f"Tool call has no name: {state.tool_call_buffer.strip()!r}")
            return None

        tool_call = ToolCall(
            id=state.current_tool_call_id or self.id_factory(),
            function=FunctionCall(
                name=data["name"],
                arguments=encode_arguments(data.get("parameters")),
            ),
        )
        state.tool_calls.append(tool_call)
        logger.debug(f"Completed tool call: {tool_call.name} with ID: {tool_call.id}")

        return StreamingToolCallUpdate(
            tool_call_id=tool_call.id,
            tool_name=tool_call.name,
            arguments_delta=tool_call.function.arguments,
            is_complete=True,
        )

    def finalize(self, state: PromptStreamState) -> ParsedModelResponse:
        """
        Build the response from what the state machine saw.

        If the stream produced no calls but the buffer holds a complete
        <tool_call> block, the blocks are extracted from the full text.
        """
        content = state.normal_content_buffer
        if state.parser_state == POSSIBLE_TAG_START:
            content += state.partial_tag_buffer
        tool_calls = list(state.tool_calls)

        if not tool_calls and OPEN_TAG in state.content_buffer and CLOSE_TAG in state.content_buffer:
            content, tool_calls = self.extract_tool_calls(state.content_buffer)

        finish_reason = (
            FinishReason.TOOL_CALLS if tool_calls else state.finish_reason or FinishReason.STOP
        )
        return ParsedModelResponse(
            content=content,
            raw_content=state.content_buffer,
            reasoning_content=state.reasoning_buffer,
            tool_calls=tuple(tool_calls),
            finish_reason=finish_reason,
        )

    def extract_tool_calls(self, content: str) -> tuple[str, list[ToolCall]]:
        """Pull every <tool_call> block out of complete text."""
        tool_calls: list[ToolCall] = []
        for match in TOOL_CALL_BLOCK_PATTERN.finditer(content):
            try:
                tool_call = normalize_tool_call(json.loads(match.group(1).strip()), self.id_factory)
            except (json.JSONDecodeError, ToolCallFormatError) as e:
                logger.error(f"Failed to parse tool call JSON: {e}")
                continue
            tool_calls.append(tool_call)
            logger.debug(f"Found tool call: {tool_call.name} with ID: {tool_call.id}")

        cleaned = TOOL_CALL_BLOCK_PATTERN.sub("", content).strip()
        return cleaned, tool_calls

    def build_historical_assistant_message(
        self,
        response: ParsedModelResponse,
    ) -> dict[str, Any]:
        # The model only knows the text format, so history keeps the raw markup.
        return {
            "role": Role.ASSISTANT.value,
            "content": response.raw_content or response.content,
        }

    def build_historical_tool_call_result_messages(
        self,
        results: list[ToolCallResult],
    ) -> list[dict[str, Any]]:
        return text_tool_result_messages(results)
