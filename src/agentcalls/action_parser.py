"""
GUI action parser.

GUI agents answer with a thought and one or more action calls written as
Python-like function calls, in several layouts depending on the model:

    Thought: I need to click this button
    Action: click(start_box='(100,200)')

    Reflection: ...
    Action_Summary: ...
    Action: type(content='Hello', start_box='(300,400)')

    <Thought>...</Thought>
    Action_Summary: ...
    Action: click(start_box='(100,200)')
    </Output>

    <think>...</think>
    <computer_env>
    Action: click(point='<point>400 435</point>')
    </computer_env>

    <think>...</think>
    <seed:tool_call>
    <function=click>
    <parameter=point><point>17 58</point></parameter>
    </function>
    </seed:tool_call>

Coordinates arrive in the model's own grid (`factors`, usually 1000x1000)
and are normalised to 0-1 boxes; with a ScreenContext their centres are
also mapped to screen pixels.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)

FINISHED_ACTION = "finished"

BOX_TAGS_PATTERN = re.compile(r"<\|box_start\|>|<\|box_end\|>")
POINT_ALIAS_PATTERN = re.compile(r"(?<!start_)(?<!end_)point=")
CALL_PATTERN = re.compile(r"^(\w+)\((.*)\)$")
ARGUMENT_PATTERN = re.compile(r"""(?:[^,'"]|'[^']*'|"[^"]*")+""")
BARE_CALL_PATTERN = re.compile(r"""\w+\((?:[^()"']|"[^"]*"|'[^']*'|\([^()]*\))*\)""")
BOX_CHARS_PATTERN = re.compile(r"[()\[\]]")

THINK_TAG_PATTERN = re.compile(r"<think[^>]*>(.*?)</think[^>]*>", re.DOTALL | re.IGNORECASE)
COMPUTER_ENV_PATTERN = re.compile(r"<computer_env>(.*?)</computer_env>", re.DOTALL | re.IGNORECASE)
ANSWER_PATTERN = re.compile(r"<answer>(.*?)</answer>", re.DOTALL | re.IGNORECASE)
THOUGHT_PATTERN = re.compile(r"Thought:\s*(.+?)(?=\s*Action[:：]|$)", re.DOTALL)
REFLECTION_PATTERN = re.compile(
    r"Reflection:\s*(.+?)Action_Summary:\s*(.+?)(?=\s*Action[:：]|$)", re.DOTALL
)
SUMMARY_PATTERN = re.compile(r"Action_Summary:\s*(.+?)(?=\s*Action[:：]|$)", re.DOTALL)
O1_THOUGHT_PATTERN = re.compile(r"<Thought>\s*(.*?)\s*</Thought>", re.DOTALL)
O1_SUMMARY_PATTERN = re.compile(r"Action_Summary:\s*(.*?)\s*Action:", re.DOTALL)
O1_ACTION_PATTERN = re.compile(r"Action:\s*(.*?)\s*</Output>", re.DOTALL)
XML_BLOCK_PATTERN = re.compile(
    r"<seed:tool_call>(.*?)</seed:tool_call>|<answer>(.*?)</answer>", re.DOTALL
)
XML_THINK_PATTERN = re.compile(r"<(think\w*)>(.*?)</\1>", re.DOTALL)
XML_FUNCTION_PATTERN = re.compile(r"<function=([\w.-]+)>(.*?)</function>", re.DOTALL)
XML_PARAMETER_PATTERN = re.compile(r"<parameter=([\w.-]+)>(.*?)</parameter>", re.DOTALL)


class ActionParseError(Exception):
    """No GUI action could be found in a prediction."""
    pass


@dataclass
class ScreenContext:
    """Screen size in pixels for the turn being parsed."""
    width: int
    height: int


@dataclass
class PredictionParsed:
    """One parsed GUI action."""
    action_type: str
    action_inputs: dict[str, Any] = field(default_factory=dict)
    thought: str = ""
    reflection: str | None = None
    raw: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "reflection": self.reflection,
            "thought": self.thought,
            "action_type": self.action_type,
            "action_inputs": self.action_inputs,
        }


class ActionBlock(NamedTuple):
    """Reasoning and raw action strings found by one format parser."""
    reflection: str | None
    thought: str | None
    actions: list[str]


def _split_actions(text: str) -> list[str]:
    return [action for action in text.split("\n\n") if action.strip()]


def _after_last_action(text: str) -> str:
    return re.split(r"Action[:：]", text)[-1].strip()


def _quote(value: str) -> str:
    quote = '"' if "'" in value else "'"
    return f"{quote}{value}{quote}"


def serialize_action(name: str, inputs: dict[str, str]) -> str:
    """Write an action back as `name(key='value', ...)`."""
    arguments = ", ".join(f"{key}={_quote(value)}" for key, value in inputs.items())
    return f"{name}({arguments})"


def parse_xml_format(text: str) -> ActionBlock | None:
    """
    Seed tool-call markup, in document order:

        <think>...</think>
        <seed:tool_call>
        <function=click>
        <parameter=point><point>17 58</point></parameter>
        </function>
        </seed:tool_call>

    An `<answer>` block becomes a finished action.

    Raises:
        ActionParseError: If a tool-call block holds no function
    """
    if "computer_env" in text:
        return None
    if "<seed:tool_call>" not in text and not ("<answer>" in text and "</answer>" in text):
        return None

    actions: list[str] = []
    for block in XML_BLOCK_PATTERN.finditer(text):
        if block.group(2) is not None:
            actions.append(serialize_action(FINISHED_ACTION, {"content": block.group(2).strip()}))
            continue
        for function in XML_FUNCTION_PATTERN.finditer(block.group(1)):
            inputs = {
                name: value.strip()
                for name, value in XML_PARAMETER_PATTERN.findall(function.group(2))
            }
            actions.append(serialize_action(function.group(1), inputs))

    if not actions:
        raise ActionParseError("No valid GUI action string was detected")

    think = XML_THINK_PATTERN.search(text)
    return ActionBlock(None, think.group(2).strip() if think else None, actions)


def parse_omni_format(text: str) -> ActionBlock | None:
    if "<computer_env>" not in text and not ("<answer>" in text and "</answer>" in text):
        return None

    think = THINK_TAG_PATTERN.search(text)
    env = COMPUTER_ENV_PATTERN.search(text)
    if env:
        action = re.sub(r"^Action:\s*", "", env.group(1).strip(), flags=re.IGNORECASE)
    else:
        answer = ANSWER_PATTERN.search(text)
        content = answer.group(1).strip() if answer else ""
        action = f"{FINISHED_ACTION}(content='{content}')"

    return ActionBlock(None, think.group(1).strip() if think else None, _split_actions(action))


def parse_thought_action_format(text: str) -> ActionBlock | None:
    if "Thought:" not in text or "Action:" not in text:
        return None
    if "Reflection:" in text or "Action_Summary:" in text:
        return None

    thought = THOUGHT_PATTERN.search(text)
    action = text.split("Action:")[-1].strip()
    return ActionBlock(None, thought.group(1).strip() if thought else None, _split_actions(action))


def parse_reflection_format(text: str) -> ActionBlock | None:
    if not (
        ("Reflection:" in text and "Action_Summary:" in text)
        or text.startswith("Action_Summary:")
    ):
        return None

    reflection = None
    thought = None
    if text.startswith("Reflection:"):
        match = REFLECTION_PATTERN.search(text)
        if match:
            reflection = match.group(1).strip()
            thought = match.group(2).strip()
    elif text.startswith("Action_Summary:"):
        match = SUMMARY_PATTERN.search(text)
        if match:
            thought = match.group(1).strip()

    action = _after_last_action(text) if re.search(r"Action[:：]", text) else ""
    return ActionBlock(reflection, thought, _split_actions(action))


def parse_o1_format(text: str) -> ActionBlock | None:
    if "<Thought>" not in text or "</Thought>" not in text:
        return None

    thought = O1_THOUGHT_PATTERN.search(text)
    summary = O1_SUMMARY_PATTERN.search(text)
    action = O1_ACTION_PATTERN.search(text)

    thought_text = thought.group(1).strip() if thought else None
    if summary:
        thought_text = f"{thought_text}, {summary.group(1).strip()}"
    return ActionBlock(None, thought_text, _split_actions(action.group(1).strip() if action else ""))


def parse_bare_call(text: str) -> ActionBlock:
    """Last resort: the first function-call-looking text anywhere."""
    match = BARE_CALL_PATTERN.search(text)
    if not match:
        raise ActionParseError("No valid GUI action string was detected")

    thought = THOUGHT_PATTERN.search(text)
    return ActionBlock(
        None,
        thought.group(1).strip() if thought else None,
        _split_actions(match.group(0).strip()),
    )


FORMAT_PARSERS: tuple[Callable[[str], ActionBlock | None], ...] = (
    parse_xml_format,
    parse_omni_format,
    parse_thought_action_format,
    parse_reflection_format,
    parse_o1_format,
    parse_bare_call,
)


def extract_action_block(text: str) -> ActionBlock:
    """
    Run the format parsers in order; the first that recognises the text wins.

    Raises:
        ActionParseError: If no action string can be found
    """
    text = text.strip()
    for parser in FORMAT_PARSERS:
        block = parser(text)
        if block is not None:
            logger.debug(f"{parser.__name__} matched {len(block.actions)} action strings")
            return block
    raise ActionParseError("No valid GUI action string was detected")


def parse_action_string(action: str) -> tuple[str, dict[str, str]]:
    """
    Parse `click(start_box='(1,1)')` into its name and raw keyword arguments.

    Point aliases are rewritten to start_box/end_box and <point>/<bbox>
    values to the parenthesised form.

    Raises:
        ActionParseError: If the text is not a function call
    """
    action = BOX_TAGS_PATTERN.sub("", action)
    action = (
        POINT_ALIAS_PATTERN.sub("start_box=", action)
        .replace("start_point=", "start_box=")
        .replace("end_point=", "end_box=")
    )

    match = CALL_PATTERN.match(action.strip())
    if not match:
        raise ActionParseError(f"Not a function call: {action!r}")

    name, args = match.group(1), match.group(2)
    kwargs: dict[str, str] = {}
    for pair in ARGUMENT_PATTERN.finditer(args):
        key, sep, value = pair.group(0).partition("=")
        key = key.strip()
        if not key or not sep:
            continue

        value = re.sub(r"^['\"]|['\"]$", "", value.strip())
        for tag in ("bbox", "point"):
            if f"<{tag}>" in value:
                inner = re.sub(rf"</?{tag}>", "", value).strip()
                value = "(" + re.sub(r"\s+", ",", inner) + ")"
        kwargs[key] = value

    return name, kwargs


def parse_box(value: str) -> list[float]:
    """
    Parse "(x,y)", "[x1, y1, x2, y2]" or "x y" into four numbers.

    Two numbers describe a point and are repeated to form a box.
    """
    numbers = [n for n in re.split(r"[,\s]+", BOX_CHARS_PATTERN.sub("", value).strip()) if n]
    if len(numbers) < 2:
        raise ValueError(f"At least 2 coordinates required, got {value!r}")
    floats = [float(n) for n in numbers[:4]]
    if len(floats) < 4:
        floats = [floats[0], floats[1], floats[0], floats[1]]
    return floats


def _normalize_inputs(
    kwargs: dict[str, str],
    factors: tuple[int, int],
    screen: ScreenContext | None,
) -> dict[str, Any]:
    inputs: dict[str, Any] = {}
    for key, value in kwargs.items():
        if "start_box" not in key and "end_box" not in key:
            inputs[key] = value
            continue

        x1, y1, x2, y2 = parse_box(value)
        box = [x1 / factors[0], y1 / factors[1], x2 / factors[0], y2 / factors[1]]
        inputs[key] = box
        if screen is not None:
            coords_key = "start_coords" if "start_box" in key else "end_coords"
            inputs[coords_key] = [
                (box[0] + box[2]) / 2 * screen.width,
                (box[1] + box[3]) / 2 * screen.height,
            ]
    return inputs


def parse_prediction(
    text: str,
    factors: tuple[int, int] = (1000, 1000),
    screen: ScreenContext | None = None,
) -> list[PredictionParsed]:
    """
    Parse a model prediction into actions, in the order they were written.

    An action string that cannot be parsed becomes an entry with an empty
    action_type rather than aborting the rest.

    Raises:
        ActionParseError: If the prediction holds no action string at all
    """
    block = extract_action_block(text)
    thought = block.thought or ""

    parsed: list[PredictionParsed] = []
    for raw in block.actions:
        try:
            name, kwargs = parse_action_string(raw.replace("\n", "\\n").lstrip())
            inputs = _normalize_inputs(kwargs, factors, screen)
        except (ActionParseError, ValueError) as e:
            logger.warning(f"Failed to parse GUI action {raw!r}: {e}")
            name, inputs = "", {}
        parsed.append(PredictionParsed(
            action_type=name,
            action_inputs=inputs,
            thought=thought,
            reflection=block.reflection,
            raw=raw,
        ))
    return parsed


def action_strings(text: str) -> list[str]:
    """Raw action strings of a prediction, [] when there are none."""
    try:
        return extract_action_block(text).actions
    except ActionParseError:
        return []
