"""
Format extractors for tagged model output.

Models trained at different times wrap the same three segments (thinking,
final answer, tool calls) in different markup. Each format gets its own
small extractor that returns None when the format is absent, and
`parse_content` tries them in a fixed order per segment:

    thinking    <think>...</think>
    answer      <answer>...</answer>
                <|FCResponseBegin|>...</answer>
    tool calls  <|FunctionCallBegin|>... [json] ...<|FunctionCallEnd|>
                <|FunctionCallBegin|>thought</think> [json]
                [json]<|FunctionCallEnd|>

Adding or retiring a format is a change to one extractor and one tuple.
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import NamedTuple

from agentcalls.normalizer import (
    IdFactory,
    ToolCallFormatError,
    generate_tool_call_id,
    normalize_tool_calls,
)
from agentcalls.types import ToolCall

logger = logging.getLogger(__name__)

THINK_PATTERN = re.compile(r"<think>(.*?)</think>", re.DOTALL)
ANSWER_PATTERN = re.compile(r"<answer>(.*?)</answer>", re.DOTALL)
FC_RESPONSE_PATTERN = re.compile(r"<\|FCResponseBegin\|>(.*?)</answer>", re.DOTALL)
FUNCTION_CALL_BLOCK_PATTERN = re.compile(
    r"<\|FunctionCallBegin\|>(.*?)<\|FunctionCallEnd\|>", re.DOTALL
)
JSON_ARRAY_PATTERN = re.compile(r"\[.*\]", re.DOTALL)
THOUGHT_THEN_CALLS_PATTERN = re.compile(
    r"<\|FunctionCallBegin\|>(.*?)</think>\s*(\[.*?\])", re.DOTALL
)
CALLS_BEFORE_END_PATTERN = re.compile(r"(\[.*?\])<\|FunctionCallEnd\|>", re.DOTALL)


class CallCandidate(NamedTuple):
    """A JSON array of tool calls found in text, plus any inline thought."""
    payload: str
    thought: str | None = None


@dataclass
class ExtractedContent:
    """Segments extracted from one completed model turn."""
    think: str = ""
    answer: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)


def extract_think(text: str) -> str | None:
    match = THINK_PATTERN.search(text)
    return match.group(1).strip() if match else None


def extract_answer(text: str) -> str | None:
    match = ANSWER_PATTERN.search(text)
    return match.group(1).strip() if match else None


def extract_fc_response(text: str) -> str | None:
    """Legacy answer marker closed by a plain </answer>."""
    match = FC_RESPONSE_PATTERN.search(text)
    return match.group(1).strip() if match else None


def extract_function_call_block(text: str) -> CallCandidate | None:
    """The JSON array between FunctionCallBegin and FunctionCallEnd."""
    block = FUNCTION_CALL_BLOCK_PATTERN.search(text)
    if not block:
        return None
    array = JSON_ARRAY_PATTERN.search(block.group(1))
    if not array:
        logger.warning(f"Function call block holds no complete JSON array: {block.group(1)[:200]!r}")
        return None
    return CallCandidate(payload=array.group(0))


def extract_thought_then_calls(text: str) -> CallCandidate | None:
    """FunctionCallBegin, free thought text, </think>, then the array."""
    match = THOUGHT_THEN_CALLS_PATTERN.search(text)
    if not match:
        return None
    return CallCandidate(payload=match.group(2), thought=match.group(1).strip())


def extract_calls_before_end(text: str) -> CallCandidate | None:
    """A bare array closed by FunctionCallEnd with no begin marker."""
    match = CALLS_BEFORE_END_PATTERN.search(text)
    return CallCandidate(payload=match.group(1)) if match else None


ANSWER_EXTRACTORS: tuple[Callable[[str], str | None], ...] = (
    extract_answer,
    extract_fc_response,
)

CALL_EXTRACTORS: tuple[Callable[[str], CallCandidate | None], ...] = (
    extract_function_call_block,
    extract_thought_then_calls,
    extract_calls_before_end,
)


def strip_think(text: str) -> str:
    """Remove the first <think> block and trim; text without one is returned as is."""
    if not THINK_PATTERN.search(text):
        return text
    return THINK_PATTERN.sub("", text, count=1).strip()


def decode_calls(
    payload: str,
    source: str,
    id_factory: IdFactory = generate_tool_call_id,
) -> list[ToolCall]:
    """Decode a candidate array; malformed JSON yields no calls."""
    try:
        items = json.loads(payload)
        return normalize_tool_calls(items, id_factory)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse {source} tool calls JSON: {e}")
    except ToolCallFormatError as e:
        logger.warning(f"Ignoring {source} tool calls: {e}")
    return []


def parse_content(
    text: str,
    id_factory: IdFactory = generate_tool_call_id,
) -> ExtractedContent:
    """
    Extract thinking, answer and tool calls from a completed turn.

    Never raises. Precedence:
    - the first answer extractor that matches wins;
    - the first call extractor whose array decodes to at least one call
      wins, earlier failures are logged and skipped;
    - the thought-then-calls format fills thinking only when no <think>
      block was found;
    - with no answer and no calls, the text minus its <think> block is the
      answer, so nothing the model said is dropped;
    - any tool call forces the answer to "", since the loop treats a
      non-empty answer as terminal.
    """
    try:
        think = extract_think(text) or ""

        answer = ""
        for extract in ANSWER_EXTRACTORS:
            found = extract(text)
            if found is not None:
                answer = found
                break

        tool_calls: list[ToolCall] = []
        for extract_calls in CALL_EXTRACTORS:
            candidate = extract_calls(text)
            if candidate is None:
                continue
            if candidate.thought is not None and not think:
                think = candidate.thought
            tool_calls = decode_calls(candidate.payload, extract_calls.__name__, id_factory)
            if tool_calls:
                break

        if not answer and not tool_calls and text.strip():
            answer = strip_think(text)

        if tool_calls:
            answer = ""

        return ExtractedContent(think=think, answer=answer, tool_calls=tool_calls)
    except Exception as e:
        logger.error(f"Error parsing content, using raw text as answer: {e}")
        return ExtractedContent(think="", answer=text, tool_calls=[])
