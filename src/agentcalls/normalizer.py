"""
Tool-call normalizer.

Turns the loose `{"name": ..., "parameters": ...}` objects that models write
in text into ToolCall records with generated ids and JSON-string arguments.

Ids are `call_<epoch millis>_<9 base36 chars>`. They are unique only in
the probabilistic sense, which is enough for calls that live inside a
single in-memory turn. Anything that persists ids across turns should use
uuid4 instead.
"""

import json
import logging
import random
import string
import time
from collections.abc import Callable
from typing import Any

from agentcalls.types import FunctionCall, ToolCall

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase
_ID_SUFFIX_LENGTH = 9

IdFactory = Callable[[], str]


class ToolCallFormatError(Exception):
    """A decoded payload does not describe a tool call."""
    pass


def generate_tool_call_id(now_ms: int | None = None) -> str:
    """Generate a tool call id such as `call_1747633091730_6m2magifs`."""
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    suffix = "".join(random.choices(_ID_ALPHABET, k=_ID_SUFFIX_LENGTH))
    return f"call_{now_ms}_{suffix}"


def encode_arguments(parameters: Any) -> str:
    """JSON-encode tool parameters, `{}` when absent. Falsy values such as `[]` are kept."""
    if parameters is None:
        parameters = {}
    return json.dumps(parameters, ensure_ascii=False, separators=(",", ":"))


def normalize_tool_call(
    raw: Any,
    id_factory: IdFactory = generate_tool_call_id,
) -> ToolCall:
    """
    Convert one raw extracted object into a ToolCall.

    Raises:
        ToolCallFormatError: If `raw` is not an object with a string name
    """
    if not isinstance(raw, dict):
        raise ToolCallFormatError(f"Tool call must be an object, got {type(raw).__name__}")
    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise ToolCallFormatError(f"Tool call has no name: {raw!r}")

    return ToolCall(
        id=id_factory(),
        function=FunctionCall(
            name=name,
            arguments=encode_arguments(raw.get("parameters")),
        ),
    )


def normalize_tool_calls(
    items: Any,
    id_factory: IdFactory = generate_tool_call_id,
) -> list[ToolCall]:
    """
    Normalize a decoded JSON array of raw tool calls.

    Entries that are not valid tool calls are dropped with a warning so one
    bad entry does not discard its siblings.

    Raises:
        ToolCallFormatError: If `items` is not a list
    """
    if not isinstance(items, list):
        raise ToolCallFormatError(f"Tool calls must be a JSON array, got {type(items).__name__}")

    calls: list[ToolCall] = []
    for raw in items:
        try:
            calls.append(normalize_tool_call(raw, id_factory))
        except ToolCallFormatError as e:
            logger.warning(f"Dropping malformed tool call: {e}")
    return calls
