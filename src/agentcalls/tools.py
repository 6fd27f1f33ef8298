"""
Tool System - what the model may call.

A Tool pairs a JSON Schema (shown to the model, natively or in the
prompt) with the handler that runs when the model asks for it. The
registry is the single place tool calls are dispatched from.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from agentcalls.types import ToolCall, ToolCallResult

logger = logging.getLogger(__name__)


class ToolHandler(Protocol):
    """Protocol for tool handler functions."""
    def __call__(self, **kwargs: Any) -> "str | list[dict[str, Any]]": ...


@dataclass
class Tool:
    """
    Definition of a tool that the agent can use.

    - name: Unique identifier
    - description: What the tool does (shown to the LLM)
    - parameters: JSON Schema for the tool's parameters
    - handler: Function that executes the tool; returns text or a list of
      content parts
    """
    name: str
    description: str
    parameters: dict[str, Any]
    handler: ToolHandler

    def to_openai_schema(self) -> dict[str, Any]:
        """Convert to OpenAI tool format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def execute(self, arguments: dict[str, Any]) -> ToolCallResult:
        """Run the handler; failures are captured in the result."""
        try:
            output = self.handler(**arguments)
        except Exception as e:
            logger.error(f"Tool {self.name} failed: {e}")
            return ToolCallResult(
                tool_call_id="",
                tool_name=self.name,
                content=[{"type": "text", "text": f"Error: {e}"}],
                success=False,
                error=str(e),
            )

        if isinstance(output, list):
            content = output
        else:
            content = [{"type": "text", "text": str(output)}]
        return ToolCallResult(tool_call_id="", tool_name=self.name, content=content)


@dataclass
class ToolRegistry:
    """Registry of available tools."""

    _tools: dict[str, Tool] = field(default_factory=dict)

    def register(self, tool: Tool) -> None:
        """Register a tool."""
        if tool.name in self._tools:
            logger.warning(f"Overwriting existing tool: {tool.name}")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def register_function(
        self,
        name: str,
        description: str,
        parameters: dict[str, Any],
        handler: ToolHandler,
    ) -> Tool:
        """Convenience method to register a function as a tool."""
        tool = Tool(
            name=name,
            description=description,
            parameters=parameters,
            handler=handler,
        )
        self.register(tool)
        return tool

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def execute(self, tool_call: ToolCall) -> ToolCallResult:
        """Execute a tool call by name with its decoded arguments."""
        tool = self._tools.get(tool_call.name)
        if tool is None:
            return self._error(tool_call, f"Unknown tool '{tool_call.name}'")

        try:
            arguments = json.loads(tool_call.function.arguments or "{}")
        except json.JSONDecodeError as e:
            return self._error(tool_call, f"Invalid arguments for '{tool_call.name}': {e}")
        if not isinstance(arguments, dict):
            return self._error(tool_call, f"Arguments for '{tool_call.name}' must be an object")

        logger.info(f"Executing tool: {tool_call.name}")
        result = tool.execute(arguments)
        result.tool_call_id = tool_call.id
        return result

    def get_schemas(self) -> list[dict[str, Any]]:
        """Get OpenAI-format schemas for all registered tools."""
        return [tool.to_openai_schema() for tool in self._tools.values()]

    @property
    def tools(self) -> list[Tool]:
        return list(self._tools.values())

    @property
    def tool_names(self) -> list[str]:
        """List of registered tool names."""
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    @staticmethod
    def _error(tool_call: ToolCall, message: str) -> ToolCallResult:
        logger.warning(message)
        return ToolCallResult(
            tool_call_id=tool_call.id,
            tool_name=tool_call.name,
            content=[{"type": "text", "text": f"Error: {message}"}],
            success=False,
            error=message,
        )
