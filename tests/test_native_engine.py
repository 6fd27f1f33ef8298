"""
Tests for the native function-calling engine.
"""

from typing import Any

from agentcalls.engine import PrepareRequestContext
from agentcalls.native_engine import NativeToolCallEngine
from agentcalls.tools import Tool
from agentcalls.types import FinishReason, FunctionCall, ParsedModelResponse, ToolCall, ToolCallResult


def chunk(delta: dict[str, Any] | None = None, finish_reason: str | None = None) -> dict[str, Any]:
    return {"choices": [{"index": 0, "delta": delta or {}, "finish_reason": finish_reason}]}


def fragment(index: int, **kwargs: Any) -> dict[str, Any]:
    return {"tool_calls": [{"index": index, **kwargs}]}


def echo_tool() -> Tool:
    return Tool(
        name="echo",
        description="Echo text",
        parameters={"type": "object", "properties": {"text": {"type": "string"}}},
        handler=lambda text: text,
    )


class TestPrepareRequest:
    """Request shaping."""

    def test_includes_tools_when_present(self) -> None:
        request = NativeToolCallEngine().prepare_request(
            PrepareRequestContext(model="gpt", messages=[], tools=[echo_tool()], top_p=0.9)
        )

        assert request["stream"] is True
        assert request["tools"][0]["function"]["name"] == "echo"
        assert request["top_p"] == 0.9

    def test_omits_empty_tools(self) -> None:
        request = NativeToolCallEngine().prepare_request(PrepareRequestContext(model="gpt", messages=[]))

        assert "tools" not in request
        assert "top_p" not in request


class TestProcessChunk:
    """Merging streamed tool call fragments."""

    def test_fragments_merge_by_index(self) -> None:
        engine = NativeToolCallEngine()
        state = engine.init_state()

        first = engine.process_chunk(
            chunk(fragment(0, id="call_a", type="function", function={"name": "echo", "arguments": ""})),
            state,
        )
        engine.process_chunk(chunk(fragment(0, function={"arguments": '{"text":'})), state)
        engine.process_chunk(chunk(fragment(0, function={"arguments": '"hi"}'})), state)

        assert first.has_tool_call_update
        assert first.streaming_tool_call_updates[0].tool_call_id == "call_a"
        assert first.streaming_tool_call_updates[0].tool_name == "echo"
        assert len(state.tool_calls) == 1
        assert state.tool_calls[0].function.arguments == '{"text":"hi"}'

    def test_parallel_calls(self) -> None:
        engine = NativeToolCallEngine()
        state = engine.init_state()

        engine.process_chunk(chunk(fragment(0, id="call_a", function={"name": "a", "arguments": "{}"})), state)
        engine.process_chunk(chunk(fragment(1, id="call_b", function={"name": "b", "arguments": "{}"})), state)

        assert [tc.name for tc in state.tool_calls] == ["a", "b"]
        assert [tc.id for tc in state.tool_calls] == ["call_a", "call_b"]

    def test_null_index_appends(self) -> None:
        engine = NativeToolCallEngine()
        state = engine.init_state()

        engine.process_chunk(chunk({"tool_calls": [{"index": None, "id": "call_a", "function": {"name": "a"}}]}), state)
        engine.process_chunk(chunk({"tool_calls": [{"index": None, "id": "call_b", "function": {"name": "b"}}]}), state)

        assert [tc.id for tc in state.tool_calls] == ["call_a", "call_b"]

    def test_finish_marks_calls_complete(self) -> None:
        engine = NativeToolCallEngine()
        state = engine.init_state()
        engine.process_chunk(chunk(fragment(0, id="call_a", function={"name": "a", "arguments": "{}"})), state)

        result = engine.process_chunk(chunk(finish_reason="tool_calls"), state)

        assert result.has_tool_call_update
        assert [u.is_complete for u in result.streaming_tool_call_updates] == [True]
        assert state.finish_reason == FinishReason.TOOL_CALLS

    def test_content_and_reasoning(self) -> None:
        engine = NativeToolCallEngine()
        state = engine.init_state()

        result = engine.process_chunk(chunk({"reasoning_content": "hmm", "content": "Hello"}), state)

        assert result.content == "Hello"
        assert result.reasoning_content == "hmm"
        assert not result.has_tool_call_update
        assert result.streaming_tool_call_updates is None


class TestFinalize:
    """Final response."""

    def test_passes_buffers_through(self) -> None:
        engine = NativeToolCallEngine()
        state = engine.init_state()
        engine.process_chunk(chunk({"content": "Done"}), state)

        response = engine.finalize(state)

        assert response.content == "Done"
        assert response.finish_reason == FinishReason.STOP
        assert response.tool_calls == ()

    def test_tool_calls_reported_with_stop(self) -> None:
        engine = NativeToolCallEngine()
        state = engine.init_state()
        engine.process_chunk(chunk({"tool_calls": [{"index": 0, "id": "call_a", "function": {"name": "a"}}]}), state)
        engine.process_chunk(chunk(finish_reason="stop"), state)

        assert engine.finalize(state).finish_reason == FinishReason.TOOL_CALLS

    def test_keeps_unknown_finish_reason(self) -> None:
        engine = NativeToolCallEngine()
        state = engine.init_state()
        engine.process_chunk(chunk(finish_reason="eos"), state)

        assert engine.finalize(state).finish_reason == "eos"


class TestHistory:
    """Messages carried into the next request."""

    def test_assistant_message_carries_tool_calls(self) -> None:
        response = ParsedModelResponse(
            content="",
            tool_calls=(ToolCall(id="call_a", function=FunctionCall(name="echo", arguments="{}")),),
            finish_reason=FinishReason.TOOL_CALLS,
        )

        message = NativeToolCallEngine().build_historical_assistant_message(response)

        assert message["role"] == "assistant"
        assert message["tool_calls"] == [
            {"id": "call_a", "type": "function", "function": {"name": "echo", "arguments": "{}"}}
        ]

    def test_assistant_message_without_calls(self) -> None:
        message = NativeToolCallEngine().build_historical_assistant_message(ParsedModelResponse(content="Hi"))
        assert message == {"role": "assistant", "content": "Hi"}

    def test_tool_results_with_images(self) -> None:
        image = {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}}
        results = [
            ToolCallResult(
                tool_call_id="call_a",
                tool_name="screenshot",
                content=[{"type": "text", "text": "Captured"}, image],
            )
        ]

        messages = NativeToolCallEngine().build_historical_tool_call_result_messages(results)

        assert messages == [
            {"role": "tool", "tool_call_id": "call_a", "content": "Captured"},
            {"role": "user", "content": [image]},
        ]
