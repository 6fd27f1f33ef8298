"""
Tests for GUI action parsing.
"""

import pytest

from agentcalls.action_parser import (
    ActionParseError,
    ScreenContext,
    action_strings,
    extract_action_block,
    parse_action_string,
    parse_box,
    parse_prediction,
)


class TestParseActionString:
    """Single `name(key='value')` strings."""

    def test_simple_click(self) -> None:
        assert parse_action_string("click(start_box='(100,200)')") == (
            "click",
            {"start_box": "(100,200)"},
        )

    def test_double_quotes_and_commas_in_values(self) -> None:
        name, kwargs = parse_action_string("""type(content="say 'hi', then wave")""")
        assert name == "type"
        assert kwargs == {"content": "say 'hi', then wave"}

    def test_multiple_arguments(self) -> None:
        _, kwargs = parse_action_string("drag(start_box='(1,2)', end_box='(3,4)')")
        assert kwargs == {"start_box": "(1,2)", "end_box": "(3,4)"}

    def test_box_tokens_are_removed(self) -> None:
        _, kwargs = parse_action_string("click(start_box='<|box_start|>(10,20)<|box_end|>')")
        assert kwargs == {"start_box": "(10,20)"}

    def test_point_aliases(self) -> None:
        _, kwargs = parse_action_string("click(point='<point>400 435</point>')")
        assert kwargs == {"start_box": "(400,435)"}

        _, kwargs = parse_action_string(
            "drag(start_point='<point>1 2</point>', end_point='<point>3 4</point>')"
        )
        assert kwargs == {"start_box": "(1,2)", "end_box": "(3,4)"}

    def test_bbox_tag(self) -> None:
        _, kwargs = parse_action_string("click(start_box='<bbox>100 200 300 400</bbox>')")
        assert kwargs == {"start_box": "(100,200,300,400)"}

    def test_no_arguments(self) -> None:
        assert parse_action_string("wait()") == ("wait", {})

    def test_not_a_call(self) -> None:
        with pytest.raises(ActionParseError):
            parse_action_string("click the button")


class TestParseBox:
    """Coordinate strings."""

    def test_point_becomes_box(self) -> None:
        assert parse_box("(100,200)") == [100.0, 200.0, 100.0, 200.0]

    def test_box_with_brackets_and_spaces(self) -> None:
        assert parse_box("[1, 2, 3, 4]") == [1.0, 2.0, 3.0, 4.0]

    def test_too_few_numbers(self) -> None:
        with pytest.raises(ValueError):
            parse_box("(5)")


class TestFormats:
    """Layouts recognised by the format chain."""

    def test_thought_action(self) -> None:
        block = extract_action_block("Thought: I need to click\nAction: click(start_box='(1,2)')")
        assert block.thought == "I need to click"
        assert block.reflection is None
        assert block.actions == ["click(start_box='(1,2)')"]

    def test_reflection_summary(self) -> None:
        text = (
            "Reflection: the page loaded\n"
            "Action_Summary: open settings\n"
            "Action: click(start_box='(1,2)')"
        )
        block = extract_action_block(text)

        assert block.reflection == "the page loaded"
        assert block.thought == "open settings"
        assert block.actions == ["click(start_box='(1,2)')"]

    def test_summary_only(self) -> None:
        block = extract_action_block("Action_Summary: scroll down\nAction: scroll(direction='down')")
        assert block.thought == "scroll down"
        assert block.actions == ["scroll(direction='down')"]

    def test_o1_tags(self) -> None:
        text = (
            "<Thought>the button is blue</Thought>\n"
            "Action_Summary: press it\n"
            "Action: click(start_box='(1,2)')\n"
            "</Output>"
        )
        block = extract_action_block(text)

        assert block.thought == "the button is blue, press it"
        assert block.actions == ["click(start_box='(1,2)')"]

    def test_computer_env(self) -> None:
        text = (
            "<think>the search box is at the top</think>\n"
            "<computer_env>\nAction: click(point='<point>500 80</point>')\n</computer_env>"
        )
        block = extract_action_block(text)

        assert block.thought == "the search box is at the top"
        assert block.actions == ["click(point='<point>500 80</point>')"]

    def test_answer_becomes_finished(self) -> None:
        block = extract_action_block("<think>done</think><answer>All set</answer>")
        assert block.actions == ["finished(content='All set')"]

    def test_seed_tool_call_click(self) -> None:
        text = (
            "<thinkt>I'll click on the browser icon to launch it.</thinkt><seed:tool_call>\n"
            "<function=click>\n<parameter=point><point>17 58</point></parameter>\n</function>\n"
            "</seed:tool_call>"
        )
        block = extract_action_block(text)

        assert block.thought == "I'll click on the browser icon to launch it."
        assert block.actions == ["click(point='<point>17 58</point>')"]

    def test_seed_tool_call_type_and_wait(self) -> None:
        typed = extract_action_block(
            "<thinkt>search</thinkt><seed:tool_call>\n<function=type>\n"
            "<parameter=content>shrimp and crab recipes</parameter>\n</function>\n</seed:tool_call>"
        )
        waited = extract_action_block(
            "<thinkt>no arguments</thinkt><seed:tool_call>\n<function=wait>\n</function>\n</seed:tool_call>"
        )

        assert typed.actions == ["type(content='shrimp and crab recipes')"]
        assert waited.actions == ["wait()"]

    def test_seed_tool_call_without_function(self) -> None:
        with pytest.raises(ActionParseError):
            extract_action_block("<thinkt>No function</thinkt><seed:tool_call>\n</seed:tool_call>")

    def test_seed_answer_with_quote(self) -> None:
        block = extract_action_block("<think>done</think><answer>It's 2.</answer>")
        assert block.actions == ["finished(content=\"It's 2.\")"]

    def test_computer_env_is_not_seed_markup(self) -> None:
        text = "<think>t</think>\n<computer_env>\nAction: open_computer()\n</computer_env>"
        assert extract_action_block(text).actions == ["open_computer()"]

    def test_bare_call(self) -> None:
        block = extract_action_block("I will press hotkey(key='ctrl c') now")
        assert block.actions == ["hotkey(key='ctrl c')"]

    def test_nothing_to_parse(self) -> None:
        with pytest.raises(ActionParseError):
            extract_action_block("I am not sure what to do.")

    def test_action_strings(self) -> None:
        text = "Thought: two steps\nAction: click(start_box='(1,2)')\n\ntype(content='hi')"
        assert action_strings(text) == ["click(start_box='(1,2)')", "type(content='hi')"]
        assert action_strings("nothing here") == []


class TestParsePrediction:
    """Complete predictions with coordinate normalisation."""

    def test_click_is_normalised(self) -> None:
        parsed = parse_prediction("Thought: click it\nAction: click(start_box='(100,200)')")

        assert len(parsed) == 1
        action = parsed[0]
        assert action.action_type == "click"
        assert action.thought == "click it"
        assert action.action_inputs == {"start_box": pytest.approx([0.1, 0.2, 0.1, 0.2])}
        assert action.raw == "click(start_box='(100,200)')"

    def test_screen_coordinates(self) -> None:
        parsed = parse_prediction(
            "Thought: drag\nAction: drag(start_box='(100,200)', end_box='<bbox>100 200 300 400</bbox>')",
            screen=ScreenContext(width=1920, height=1080),
        )

        inputs = parsed[0].action_inputs
        assert inputs["start_coords"] == pytest.approx([192.0, 216.0])
        assert inputs["end_box"] == pytest.approx([0.1, 0.2, 0.3, 0.4])
        assert inputs["end_coords"] == pytest.approx([384.0, 324.0])

    def test_custom_factors(self) -> None:
        parsed = parse_prediction(
            "Thought: t\nAction: click(start_box='(50,25)')", factors=(100, 50)
        )
        assert parsed[0].action_inputs["start_box"] == pytest.approx([0.5, 0.5, 0.5, 0.5])

    def test_multiple_actions_share_thought(self) -> None:
        text = "Thought: fill the form\nAction: click(start_box='(1,2)')\n\ntype(content='hello')"
        parsed = parse_prediction(text)

        assert [p.action_type for p in parsed] == ["click", "type"]
        assert all(p.thought == "fill the form" for p in parsed)

    def test_newline_in_content_is_escaped(self) -> None:
        parsed = parse_prediction("Thought: submit\nAction: type(content='hello\n')")
        assert parsed[0].action_inputs["content"] == "hello\\n"

    def test_unparsable_action_has_empty_type(self) -> None:
        parsed = parse_prediction("Thought: hmm\nAction: wiggle the mouse")

        assert len(parsed) == 1
        assert parsed[0].action_type == ""
        assert parsed[0].action_inputs == {}

    def test_bad_coordinates_have_empty_type(self) -> None:
        parsed = parse_prediction("Thought: t\nAction: click(start_box='(oops)')")
        assert parsed[0].action_type == ""

    def test_seed_scroll(self) -> None:
        text = (
            "<thinkt>scroll up somewhere on the page</thinkt><seed:tool_call>\n<function=scroll>\n"
            "<parameter=direction>up</parameter>\n<parameter=point><point>500 500</point></parameter>\n"
            "</function>\n</seed:tool_call>"
        )
        parsed = parse_prediction(text)

        assert parsed[0].action_type == "scroll"
        assert parsed[0].action_inputs == {"direction": "up", "start_box": [0.5, 0.5, 0.5, 0.5]}
        assert parsed[0].thought == "scroll up somewhere on the page"

    def test_finished(self) -> None:
        parsed = parse_prediction("Thought: all done\nAction: finished(content='Booked the flight')")
        assert parsed[0].action_type == "finished"
        assert parsed[0].action_inputs == {"content": "Booked the flight"}

    def test_to_dict(self) -> None:
        parsed = parse_prediction("Reflection: r\nAction_Summary: s\nAction: wait()")
        assert parsed[0].to_dict() == {
            "reflection": "r",
            "thought": "s",
            "action_type": "wait",
            "action_inputs": {},
        }
