"""
GUI engine - vision-model actions turned into tool calls.

GUI models do not call tools; they predict screen actions such as
`click(start_box='(100,200)')`. After the stream ends the prediction is
parsed with the action parser and every action becomes a
`browser_vision_control` call. A `finished(...)` action, or an
`</answer>` block, ends the run instead.

The screen size used to map coordinates to pixels belongs to the turn,
so it is carried in GUIStreamProcessingState.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from agentcalls.action_parser import (
    FINISHED_ACTION,
    ActionParseError,
    PredictionParsed,
    ScreenContext,
    parse_prediction,
)
from agentcalls.engine import (
    DEFAULT_TEMPERATURE,
    PrepareRequestContext,
    ToolCallEngine,
    chunk_delta,
    chunk_finish_reason,
    text_tool_result_messages,
)
from agentcalls.normalizer import IdFactory, generate_tool_call_id
from agentcalls.tools import Tool
from agentcalls.types import (
    FinishReason,
    FunctionCall,
    ParsedModelResponse,
    Role,
    StreamChunkResult,
    StreamProcessingState,
    ToolCall,
    ToolCallResult,
)

logger = logging.getLogger(__name__)

GUI_TOOL_NAME = "browser_vision_control"

THINK_ARTIFACT_PATTERN = re.compile(r"think_never_used_[a-f0-9]{32}>")
FINISH_MESSAGE_PATTERN = re.compile(
    r"<\|(FunctionCallBegin|FCResponseBegin)\|>([\s\S]*?)(?:</answer>|$)"
)


@dataclass
class GUIStreamProcessingState(StreamProcessingState):
    """Stream state plus the screen the prediction refers to."""
    screen: ScreenContext | None = None


class GUIToolCallEngine(ToolCallEngine):
    """Engine for GUI agents that predict screen actions."""

    name = "gui"

    def __init__(
        self,
        factors: tuple[int, int] = (1000, 1000),
        id_factory: IdFactory = generate_tool_call_id,
    ) -> None:
        self.factors = factors
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

    def init_state(self, screen: ScreenContext | None = None) -> GUIStreamProcessingState:
        return GUIStreamProcessingState(screen=screen)

    def process_chunk(
        self,
        chunk: dict[str, Any],
        state: StreamProcessingState,
    ) -> StreamChunkResult:
        content = chunk_delta(chunk).get("content") or ""
        if content:
            state.content_buffer += content

        finish_reason = chunk_finish_reason(chunk)
        if finish_reason:
            state.finish_reason = finish_reason

        return StreamChunkResult(content=content)

    def finalize(self, state: StreamProcessingState) -> ParsedModelResponse:
        full_content = state.content_buffer
        screen = state.screen if isinstance(state, GUIStreamProcessingState) else None

        try:
            parsed = parse_prediction(full_content, self.factors, screen)
        except ActionParseError as e:
            logger.warning(f"No GUI action in prediction: {e}")
            parsed = []

        tool_calls: list[ToolCall] = []
        finished = False
        finish_message: str | None = None

        for action in parsed:
            cleaned = THINK_ARTIFACT_PATTERN.sub("", action.thought)
            if cleaned:
                action.thought = cleaned

            if action.action_type == FINISHED_ACTION:
                finished = True
                finish_message = action.action_inputs.get("content")
                continue
            if not action.action_type:
                continue

            tool_calls.append(self._to_tool_call(action))

        if "</answer>" in full_content:
            # Older prompts put the final answer after a function-call marker.
            match = FINISH_MESSAGE_PATTERN.search(full_content)
            finished = True
            if match:
                finish_message = match.group(2)

        logger.debug(
            f"Parsed {len(parsed)} GUI actions into {len(tool_calls)} tool calls, finished={finished}"
        )
        content = finish_message or ""
        if not parsed and not finished:
            content = full_content

        return ParsedModelResponse(
            content=content,
            raw_content=full_content,
            reasoning_content=parsed[0].thought if parsed else "",
            tool_calls=tuple(tool_calls),
            finish_reason=(
                FinishReason.TOOL_CALLS if tool_calls and not finished else FinishReason.STOP
            ),
        )

    def _to_tool_call(self, action: PredictionParsed) -> ToolCall:
        arguments = {
            "action": action.raw,
            "step": action.thought,
            "thought": action.thought,
            "operator_action": action.to_dict(),
        }
        return ToolCall(
            id=self.id_factory(),
            function=FunctionCall(
                name=GUI_TOOL_NAME,
                arguments=json.dumps(arguments, ensure_ascii=False),
            ),
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
