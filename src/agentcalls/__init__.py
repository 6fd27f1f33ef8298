"""
agentcalls - tool-call engines for LLM agents.

Models expose tools in different ways: native function calling, a
<tool_call> format taught in the prompt, tagged text such as
<|FunctionCallBegin|>, or screen actions predicted by a GUI model. Each
engine turns one streamed model turn into the same ParsedModelResponse
so the agent loop never needs to know which kind of model it talks to.
"""

__version__ = "0.1.0"

from agentcalls.action_parser import (
    ActionParseError,
    PredictionParsed,
    ScreenContext,
    parse_action_string,
    parse_prediction,
)
from agentcalls.aio_client import AioClient, AioClientError, ShellTimeoutError
from agentcalls.config import AgentConfig, AioConfig, EngineConfig, LLMConfig, LoopConfig
from agentcalls.engine import PrepareRequestContext, ToolCallEngine
from agentcalls.extractors import parse_content
from agentcalls.factory import create_engine
from agentcalls.gui_engine import GUIToolCallEngine
from agentcalls.llm import LLMClient, LLMError
from agentcalls.loop import AgentLoop, LoopResult
from agentcalls.mcp_engine import SeedMCPToolCallEngine
from agentcalls.native_engine import NativeToolCallEngine
from agentcalls.normalizer import ToolCallFormatError, generate_tool_call_id
from agentcalls.prompt_engine import PromptEngineeringToolCallEngine
from agentcalls.tools import Tool, ToolRegistry
from agentcalls.types import (
    FinishReason,
    FunctionCall,
    ParsedModelResponse,
    StreamChunkResult,
    StreamingToolCallUpdate,
    StreamProcessingState,
    ToolCall,
    ToolCallResult,
)

__all__ = [
    "ActionParseError",
    "AgentConfig",
    "AgentLoop",
    "AioClient",
    "AioClientError",
    "AioConfig",
    "EngineConfig",
    "FinishReason",
    "FunctionCall",
    "GUIToolCallEngine",
    "LLMClient",
    "LLMConfig",
    "LLMError",
    "LoopConfig",
    "LoopResult",
    "NativeToolCallEngine",
    "ParsedModelResponse",
    "PredictionParsed",
    "PrepareRequestContext",
    "PromptEngineeringToolCallEngine",
    "ScreenContext",
    "SeedMCPToolCallEngine",
    "ShellTimeoutError",
    "StreamChunkResult",
    "StreamProcessingState",
    "StreamingToolCallUpdate",
    "Tool",
    "ToolCall",
    "ToolCallEngine",
    "ToolCallFormatError",
    "ToolCallResult",
    "ToolRegistry",
    "create_engine",
    "generate_tool_call_id",
    "parse_action_string",
    "parse_content",
    "parse_prediction",
]
