"""
Tests for ToolRegistry - how the agent acts on tool calls.

Tool failures are reported to the model as failed results, never raised
into the agent loop.
"""

from agentcalls.tools import Tool, ToolRegistry
from agentcalls.types import FunctionCall, ToolCall


def make_call(name: str, arguments: str) -> ToolCall:
    return ToolCall(id="call_123", function=FunctionCall(name=name, arguments=arguments))


class TestToolDefinition:
    """Test tool definition and schema generation."""

    def test_tool_to_openai_schema(self) -> None:
        """Tool should generate valid OpenAI schema."""
        tool = Tool(
            name="test_tool",
            description="A test tool",
            parameters={
                "type": "object",
                "properties": {
                    "arg1": {"type": "string"},
                },
                "required": ["arg1"],
            },
            handler=lambda arg1: f"Got: {arg1}",
        )

        schema = tool.to_openai_schema()

        assert schema["type"] == "function"
        assert schema["function"]["name"] == "test_tool"
        assert schema["function"]["description"] == "A test tool"
        assert "properties" in schema["function"]["parameters"]

    def test_tool_execution_success(self) -> None:
        """Text output becomes a single text part."""
        tool = Tool(
            name="echo",
            description="Echo input",
            parameters={"type": "object", "properties": {}},
            handler=lambda **kwargs: "echoed",
        )

        result = tool.execute({})

        assert result.success
        assert result.content == [{"type": "text", "text": "echoed"}]
        assert result.text == "echoed"

    def test_tool_returning_content_parts(self) -> None:
        """A list of parts is passed through, images included."""
        parts = [
            {"type": "text", "text": "Screenshot taken"},
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
        ]
        tool = Tool(
            name="screenshot",
            description="Take a screenshot",
            parameters={"type": "object", "properties": {}},
            handler=lambda: parts,
        )

        result = tool.execute({})

        assert result.content == parts
        assert result.text == "Screenshot taken"

    def test_tool_execution_failure(self) -> None:
        """Tool execution failure should be captured."""
        def failing_handler(**kwargs: object) -> str:
            raise ValueError("Something went wrong")

        tool = Tool(
            name="failing",
            description="Always fails",
            parameters={"type": "object", "properties": {}},
            handler=failing_handler,
        )

        result = tool.execute({})

        assert not result.success
        assert "Something went wrong" in result.text
        assert result.error == "Something went wrong"


class TestToolRegistry:
    """Test the tool registry."""

    def test_register_and_get_tool(self) -> None:
        """Should be able to register and retrieve tools."""
        registry = ToolRegistry()
        tool = Tool(
            name="my_tool",
            description="My tool",
            parameters={"type": "object", "properties": {}},
            handler=lambda: "result",
        )

        registry.register(tool)

        assert "my_tool" in registry
        assert registry.get("my_tool") is tool
        assert registry.tools == [tool]
        assert len(registry) == 1

    def test_register_function_convenience(self) -> None:
        """register_function should create and register a tool."""
        registry = ToolRegistry()

        tool = registry.register_function(
            name="func_tool",
            description="Function tool",
            parameters={"type": "object", "properties": {}},
            handler=lambda: "done",
        )

        assert "func_tool" in registry
        assert registry.get("func_tool") is tool
        assert registry.tool_names == ["func_tool"]

    def test_execute_tool_call(self) -> None:
        """Registry should execute tool calls with decoded arguments."""
        registry = ToolRegistry()
        registry.register_function(
            name="greet",
            description="Greet someone",
            parameters={
                "type": "object",
                "properties": {"name": {"type": "string"}},
            },
            handler=lambda name: f"Hello, {name}!",
        )

        result = registry.execute(make_call("greet", '{"name": "World"}'))

        assert result.success
        assert result.tool_call_id == "call_123"
        assert result.tool_name == "greet"
        assert result.text == "Hello, World!"

    def test_empty_arguments(self) -> None:
        registry = ToolRegistry()
        registry.register_function("now", "Current time", {}, lambda: "noon")

        assert registry.execute(make_call("now", "")).text == "noon"

    def test_execute_unknown_tool(self) -> None:
        """Unknown tools should return error result."""
        result = ToolRegistry().execute(make_call("nonexistent", "{}"))

        assert not result.success
        assert "Unknown tool" in result.text
        assert result.tool_call_id == "call_123"

    def test_invalid_argument_json(self) -> None:
        registry = ToolRegistry()
        registry.register_function("echo", "Echo", {}, lambda text: text)

        result = registry.execute(make_call("echo", '{"text": '))

        assert not result.success
        assert "Invalid arguments" in result.error

    def test_non_object_arguments(self) -> None:
        registry = ToolRegistry()
        registry.register_function("echo", "Echo", {}, lambda text: text)

        result = registry.execute(make_call("echo", '["hi"]'))

        assert not result.success
        assert "must be an object" in result.error

    def test_get_schemas(self) -> None:
        """Should return schemas for all tools."""
        registry = ToolRegistry()
        registry.register_function("a", "Tool A", {"type": "object", "properties": {}}, lambda: "")
        registry.register_function("b", "Tool B", {"type": "object", "properties": {}}, lambda: "")

        schemas = registry.get_schemas()

        assert [s["function"]["name"] for s in schemas] == ["a", "b"]
