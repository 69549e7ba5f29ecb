import json

from chat.history import history_to_display, parse_tool_result_content
from models import ConversationMessage, MessageRole, ToolCallStatus


def _msg(role, content="", **kw):
    return ConversationMessage(role=role, content=content, **kw)


def _tool_call(call_id, name, args):
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": args}}


def test_structured_history_merges_results_onto_cards():
    messages = [
        _msg(MessageRole.SYSTEM, "prompt"),
        _msg(MessageRole.USER, "Weather in two cities?"),
        _msg(
            MessageRole.ASSISTANT,
            "Checking.",
            tool_calls=[
                _tool_call("c1", "get_weather", json.dumps({"location": "NYC"})),
                _tool_call("c2", "get_weather", json.dumps({"location": "LA"})),
            ],
        ),
        _msg(MessageRole.TOOL, 'Tool "get_weather" executed successfully:\n{"temperature": 65}\n(Execution time: 100ms)', tool_call_id="c1"),
        _msg(MessageRole.TOOL, 'Tool "get_weather" failed: Network timeout', tool_call_id="c2"),
        _msg(MessageRole.ASSISTANT, "NYC is 65."),
    ]

    display = history_to_display(messages)

    assert [m.content for m in display] == ["Weather in two cities?", "Checking.", "", "", "NYC is 65."]
    nyc, la = display[2].tool_call, display[3].tool_call
    assert nyc.parameters == {"location": "NYC"}
    assert nyc.status == ToolCallStatus.COMPLETED
    assert nyc.result == {"temperature": 65}
    assert nyc.execution_time_ms == 100
    assert la.status == ToolCallStatus.FAILED
    assert la.error == "Network timeout"


def test_unanswered_call_stays_executing_and_bad_args_become_empty():
    messages = [
        _msg(MessageRole.ASSISTANT, tool_calls=[_tool_call("c9", "task", "invalid json{")]),
    ]
    display = history_to_display(messages)
    assert len(display) == 1
    assert display[0].tool_call.status == ToolCallStatus.EXECUTING
    assert display[0].tool_call.parameters == {}


def test_orphan_tool_messages_are_skipped():
    messages = [
        _msg(MessageRole.TOOL, "Tool result", tool_call_id="unknown"),
        _msg(MessageRole.TOOL, "Tool result"),
    ]
    assert history_to_display(messages) == []


def test_inline_history_matches_user_role_results():
    messages = [
        _msg(MessageRole.USER, "1+2?"),
        _msg(MessageRole.ASSISTANT, 'Adding. {"toolname": "add", "parameters": {"a": 1, "b": 2}}'),
        _msg(MessageRole.USER, 'Tool "add" executed successfully:\n3\n(Execution time: 4ms)'),
        _msg(MessageRole.ASSISTANT, "3"),
    ]
    display = history_to_display(messages)

    assert [m.content for m in display] == ["1+2?", "Adding.", "", "3"]
    assert display[2].tool_call.result == 3


def test_parse_tool_result_content_plain_text():
    name, status, result, error, ms = parse_tool_result_content('Tool "x" executed successfully:\nnot json\n(Execution time: 2ms)')
    assert (name, status, result, error, ms) == ("x", ToolCallStatus.COMPLETED, "not json", None, 2)


def test_pretty_printed_inline_directive_prose_excludes_json():
    messages = [
        _msg(MessageRole.ASSISTANT, 'Adding.\n{\n  "toolname": "add",\n  "parameters": {"a": 1, "b": 2}\n}'),
        _msg(MessageRole.USER, 'Tool "add" executed successfully:\n3\n(Execution time: 4ms)'),
    ]
    display = history_to_display(messages)

    assert [m.content for m in display] == ["Adding.", ""]
    assert display[1].tool_call.parameters == {"a": 1, "b": 2}
    assert display[1].tool_call.result == 3
