"""
Seed MCP engine - tagged-text tool calls parsed after the stream ends.

The model writes thinking, answers and tool calls with text markers
(<think>, <answer>, <|FunctionCallBegin|> and friends). Those markers
cannot be matched reliably on partial text, so chunks are only
accumulated while streaming and all extraction happens in finalize.
"""

import logging
from typing import Any

from agentcalls.engine import (
    DEFAULT_TEMPERATURE,
    PrepareRequestContext,
    ToolCallEngine,
    chunk_delta,
    chunk_finish_reason,
    text_tool_result_messages,
)
from agentcalls.extractors import parse_content
from agentcalls.normalizer import IdFactory, generate_tool_call_id
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


class SeedMCPToolCallEngine(ToolCallEngine):
    """Engine for models that emit tagged-text tool calls."""

    name = "seed_mcp"

    def __init__(self, id_factory: IdFactory = generate_tool_call_id) -> None:
        self.id_factory = id_factory

    def prepare_prompt(self, instructions: str, tools: list[Tool]) -> str:
        return instructions

    def prepare_request(self, context: PrepareRequestContext) -> dict[str, Any]:
        return {
            "model": context.model,
            "messages": context.messages,
            "temperature": context.temperature or DEFAULT_TEMPERATURE,
            "stream": True,
        }

    def process_chunk(
        self,
        chunk: dict[str, Any],
        state: StreamProcessingState,
    ) -> StreamChunkResult:
        """
        Accumulate the delta text and record any finish signal.

        Returns only the delta for live display; tool calls are never
        detected here.
        """
        content = chunk_delta(chunk).get("content") or ""
        if content:
            state.content_buffer += content

        finish_reason = chunk_finish_reason(chunk)
        if finish_reason:
            state.finish_reason = finish_reason

        return StreamChunkResult(content=content)

    def finalize(self, state: StreamProcessingState) -> ParsedModelResponse:
        full_content = state.content_buffer
        logger.debug(f"Finalizing {len(full_content)} chars of content")

        extracted = parse_content(full_content, self.id_factory)
        logger.debug(
            f"Extracted {len(extracted.tool_calls)} tool calls, "
            f"answer={len(extracted.answer)} chars, think={len(extracted.think)} chars"
        )

        return ParsedModelResponse(
            content=extracted.answer,
            raw_content=full_content,
            reasoning_content=extracted.think,
            tool_calls=tuple(extracted.tool_calls),
            finish_reason=FinishReason.TOOL_CALLS if extracted.tool_calls else FinishReason.STOP,
        )

    def build_historical_assistant_message(
        self,
        response: ParsedModelResponse,
    ) -> dict[str, Any]:
        return {
            "role": Role.ASSISTANT.value,
            "content": response.raw_content or response.content,
        }

    def build_historical_tool_call_result_messages(
        self,
        results: list[ToolCallResult],
    ) -> list[dict[str, Any]]:
        return text_tool_result_messages(results)
