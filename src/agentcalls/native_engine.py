"""
Native engine - function calling supported by the model API.

Tool definitions go in the request's `tools` field and the server streams
structured `delta.tool_calls` fragments. Fragments for the same call share
an `index`; the first carries the id and name, later ones append to the
arguments string.
"""

import logging
from typing import Any

from agentcalls.engine import (
    PrepareRequestContext,
    ToolCallEngine,
    chunk_delta,
    chunk_finish_reason,
    native_tool_result_messages,
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


class NativeToolCallEngine(ToolCallEngine):
    """Engine for models with native function calling."""

    name = "native"

    def prepare_prompt(self, instructions: str, tools: list[Tool]) -> str:
        return instructions

    def prepare_request(self, context: PrepareRequestContext) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": context.model,
            "messages": context.messages,
            "temperature": context.temperature,
            "stream": True,
        }
        # Some models reject a `tools` field outright, even an empty one.
        if context.tools:
            logger.debug(
                f"Preparing request for model: {context.model} with {len(context.tools)} tools"
            )
            request["tools"] = [tool.to_openai_schema() for tool in context.tools]
        else:
            logger.debug(f"Preparing request for model: {context.model} without tools")
        if context.top_p is not None:
            request["top_p"] = context.top_p
        return request

    def process_chunk(
        self,
        chunk: dict[str, Any],
        state: StreamProcessingState,
    ) -> StreamChunkResult:
        delta = chunk_delta(chunk)
        finish_reason = chunk_finish_reason(chunk)
        if finish_reason:
            state.finish_reason = finish_reason

        reasoning = delta.get("reasoning_content") or ""
        if reasoning:
            state.reasoning_buffer += reasoning

        content = delta.get("content") or ""
        if content:
            state.content_buffer += content

        updates: list[StreamingToolCallUpdate] = []
        has_tool_call_update = False

        fragments = delta.get("tool_calls")
        if fragments:
            has_tool_call_update = True
            self._merge_fragments(fragments, state.tool_calls, updates)

        if finish_reason == FinishReason.TOOL_CALLS and state.tool_calls:
            has_tool_call_update = True
            for tool_call in state.tool_calls:
                updates.append(StreamingToolCallUpdate(
                    tool_call_id=tool_call.id,
                    tool_name=tool_call.name,
                    arguments_delta="",
                    is_complete=True,
                ))

        return StreamChunkResult(
            content=content,
            reasoning_content=reasoning,
            has_tool_call_update=has_tool_call_update,
            tool_calls=state.tool_calls,
            streaming_tool_call_updates=updates or None,
        )

    def _merge_fragments(
        self,
        fragments: list[dict[str, Any]],
        tool_calls: list[ToolCall],
        updates: list[StreamingToolCallUpdate],
    ) -> None:
        for fragment in fragments:
            index = fragment.get("index")
            if index is None:
                index = len(tool_calls)
            while len(tool_calls) <= index:
                tool_calls.append(ToolCall(id="", function=FunctionCall(name="")))

            current = tool_calls[index]
            if fragment.get("id"):
                current.id = fragment["id"]
            if fragment.get("type"):
                current.type = fragment["type"]

            function = fragment.get("function") or {}
            changed = False
            if function.get("name"):
                current.function.name = function["name"]
                changed = True

            arguments_delta = function.get("arguments") or ""
            if arguments_delta:
                current.function.arguments += arguments_delta
                changed = True

            if changed:
                updates.append(StreamingToolCallUpdate(
                    tool_call_id=current.id,
                    tool_name=current.name,
                    arguments_delta=arguments_delta,
                    is_complete=False,
                ))

    def finalize(self, state: StreamProcessingState) -> ParsedModelResponse:
        return ParsedModelResponse(
            content=state.content_buffer,
            reasoning_content=state.reasoning_buffer,
            tool_calls=tuple(state.tool_calls),
            finish_reason=(
                FinishReason.TOOL_CALLS if state.tool_calls else state.finish_reason or FinishReason.STOP
            ),
        )

    def build_historical_assistant_message(
        self,
        response: ParsedModelResponse,
    ) -> dict[str, Any]:
        message: dict[str, Any] = {
            "role": Role.ASSISTANT.value,
            "content": response.content,
        }
        if response.tool_calls:
            message["tool_calls"] = [tool_call.to_dict() for tool_call in response.tool_calls]
            logger.debug(f"Adding {len(response.tool_calls)} tool calls to assistant message")
        return message

    def build_historical_tool_call_result_messages(
        self,
        results: list[ToolCallResult],
    ) -> list[dict[str, Any]]:
        return native_tool_result_messages(results)
