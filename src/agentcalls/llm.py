"""
LLM Client - streaming chat completions for tool call engines.

This client works with any OpenAI-compatible API:
- vLLM (http://localhost:8000/v1)
- Ollama (http://localhost:11434/v1)
- OpenAI itself

Engines consume the streamed chunks; the client only moves bytes. Server
sent events are read line by line, one `data: {...}` chunk per event, and
the stream ends at `data: [DONE]`.

Includes timeout and retry logic for resilience against API hangs.
Retries only happen before the first byte of a stream is consumed, so a
turn is never fed the same chunk twice.
"""

import json
import logging
import time
from collections.abc import Callable, Iterator
from typing import Any

import httpx

from agentcalls.config import LLMConfig
from agentcalls.engine import ToolCallEngine
from agentcalls.types import ParsedModelResponse, StreamChunkResult, StreamProcessingState

logger = logging.getLogger(__name__)

# Default timeout configuration (in seconds)
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 180.0  # LLM responses can take a while
DEFAULT_WRITE_TIMEOUT = 10.0
DEFAULT_POOL_TIMEOUT = 10.0

# Retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 60.0

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


class LLMError(Exception):
    """Error from the LLM client."""
    pass


def parse_sse_line(line: str) -> dict[str, Any] | str | None:
    """
    Decode one SSE line.

    Returns the chunk dict, SSE_DONE at the end marker, or None for lines
    that carry nothing (blank lines, comments, other fields, bad JSON).
    """
    line = line.strip()
    if not line.startswith(SSE_DATA_PREFIX):
        return None

    data = line[len(SSE_DATA_PREFIX):].strip()
    if data == SSE_DONE:
        return SSE_DONE
    if not data:
        return None

    try:
        chunk = json.loads(data)
    except json.JSONDecodeError as e:
        logger.warning(f"Skipping undecodable stream line: {e}")
        return None
    if not isinstance(chunk, dict):
        logger.warning(f"Skipping non-object stream chunk: {data[:100]}")
        return None
    return chunk


def response_to_chunk(data: dict[str, Any]) -> dict[str, Any]:
    """Convert a non-streaming completion into a single equivalent chunk."""
    choice = (data.get("choices") or [{}])[0]
    message = choice.get("message") or {}

    delta: dict[str, Any] = {"role": message.get("role", "assistant")}
    if message.get("content"):
        delta["content"] = message["content"]
    if message.get("reasoning_content"):
        delta["reasoning_content"] = message["reasoning_content"]
    if message.get("tool_calls"):
        delta["tool_calls"] = [
            {"index": i, **tool_call} for i, tool_call in enumerate(message["tool_calls"])
        ]

    return {
        "id": data.get("id", ""),
        "model": data.get("model", ""),
        "choices": [{
            "index": 0,
            "delta": delta,
            "finish_reason": choice.get("finish_reason", "stop"),
        }],
    }


class LLMClient:
    """
    Client for OpenAI-compatible LLM APIs.

    Synchronous on purpose: a turn is consumed chunk by chunk by a single
    engine state, which has no locking.
    """

    def __init__(
        self,
        config: LLMConfig | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client with configuration.

        Args:
            config: LLM configuration (model, API key, etc.)
            max_retries: Maximum number of retries for timeout/network errors
            retry_delay: Seconds to wait before retrying
            transport: Optional httpx transport, e.g. httpx.MockTransport
        """
        self.config = config or LLMConfig.from_env()
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        # Use layered timeouts for better control
        timeout = httpx.Timeout(
            connect=DEFAULT_CONNECT_TIMEOUT,
            read=DEFAULT_READ_TIMEOUT,
            write=DEFAULT_WRITE_TIMEOUT,
            pool=DEFAULT_POOL_TIMEOUT,
        )

        self._client = httpx.Client(
            base_url=self.config.base_url,
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def _payload(self, request: dict[str, Any]) -> dict[str, Any]:
        payload = {"max_tokens": self.config.max_tokens, **request}
        if not payload.get("model"):
            payload["model"] = self.config.model
        return payload

    def _send(self, payload: dict[str, Any], stream: bool) -> httpx.Response:
        """
        POST to /chat/completions with automatic retry.

        Raises:
            LLMError: If all retries are exhausted or a non-retryable error occurs
        """
        last_error: Exception | None = None

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                logger.info(f"Retry attempt {attempt}/{self.max_retries} after {self.retry_delay}s delay...")
                time.sleep(self.retry_delay)

            logger.debug(
                f"Sending chat request with {len(payload.get('messages', []))} messages "
                f"(attempt {attempt + 1}, stream={stream})"
            )

            try:
                request = self._client.build_request("POST", "/chat/completions", json=payload)
                response = self._client.send(request, stream=stream)
                try:
                    response.raise_for_status()
                except httpx.HTTPStatusError:
                    # The body of a streamed response must be read before its text is usable.
                    response.read()
                    response.close()
                    raise
                return response

            except httpx.TimeoutException as e:
                logger.warning(f"Request timed out (attempt {attempt + 1}): {e}")
                last_error = e
                continue

            except httpx.HTTPStatusError as e:
                if e.response.status_code == 429:
                    wait_time = self.retry_delay
                    retry_after = e.response.headers.get("Retry-After")
                    if retry_after:
                        try:
                            wait_time = float(retry_after)
                            logger.warning(f"Rate limited. Waiting {wait_time}s (from Retry-After header)")
                        except ValueError:
                            logger.warning(f"Rate limited. Waiting {wait_time}s")
                    else:
                        logger.warning(f"Rate limited. Waiting {wait_time}s")
                    time.sleep(wait_time)
                    last_error = e
                    continue

                if e.response.status_code == 503:
                    logger.warning(f"Service unavailable (attempt {attempt + 1}): {e}")
                    last_error = e
                    continue

                logger.error(f"HTTP error: {e.response.status_code} - {e.response.text}")
                raise LLMError(f"HTTP {e.response.status_code}: {e.response.text}") from e

            except httpx.RequestError as e:
                logger.warning(f"Request error (attempt {attempt + 1}): {e}")
                last_error = e
                continue

        logger.error(f"All {self.max_retries + 1} attempts failed. Last error: {last_error}")
        raise LLMError(f"Request failed after {self.max_retries + 1} attempts: {last_error}") from last_error

    def stream_chunks(self, request: dict[str, Any]) -> Iterator[dict[str, Any]]:
        """
        Yield chat-completion chunks for a request built by an engine.

        A request with `stream` false is sent as a plain completion and
        yielded as one synthetic chunk.

        Raises:
            LLMError: On transport failure, before or during the stream
        """
        payload = self._payload(request)

        if not payload.get("stream"):
            response = self._send(payload, stream=False)
            try:
                data = response.json()
            except json.JSONDecodeError as e:
                raise LLMError(f"Invalid JSON in completion response: {e}") from e
            yield response_to_chunk(data)
            return

        response = self._send(payload, stream=True)
        try:
            for line in response.iter_lines():
                chunk = parse_sse_line(line)
                if chunk is None:
                    continue
                if chunk == SSE_DONE:
                    logger.debug("Stream finished")
                    return
                yield chunk
        except httpx.HTTPError as e:
            logger.error(f"Stream interrupted: {e}")
            raise LLMError(f"Stream interrupted: {e}") from e
        finally:
            response.close()

    def run_turn(
        self,
        engine: ToolCallEngine,
        request: dict[str, Any],
        on_chunk: Callable[[StreamChunkResult], None] | None = None,
        state: StreamProcessingState | None = None,
    ) -> ParsedModelResponse:
        """
        Run one model turn through an engine.

        Args:
            engine: Engine that built `request`
            request: Chat-completion request body
            on_chunk: Called with every chunk result, for live display
            state: Pre-initialized state, defaults to `engine.init_state()`

        Returns:
            The engine's finalized response
        """
        if state is None:
            state = engine.init_state()

        chunks = 0
        for chunk in self.stream_chunks(request):
            result = engine.process_chunk(chunk, state)
            chunks += 1
            if on_chunk is not None:
                on_chunk(result)

        response = engine.finalize(state)
        logger.info(
            f"Turn finished after {chunks} chunks: finish_reason={response.finish_reason}, "
            f"tool_calls={len(response.tool_calls)}"
        )
        return response

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "LLMClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
