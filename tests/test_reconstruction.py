import copy

from chat.reconstruction import EventKind, MessageReconstructor, ReconstructionEvent, replay
from models import MessageRole, ToolCallResult, ToolCallStatus


def _call(name="add", **params):
    return ToolCallResult(tool_name=name, parameters=params or {"a": 1})


def _done(call, result):
    finished = copy.deepcopy(call)
    finished.complete(result, 5)
    return finished


def test_contiguous_chunks_share_one_message():
    view = MessageReconstructor()
    view.add_user_message("hi")
    for chunk in ["Hel", "lo"]:
        view.handle_chunk(chunk)
    view.handle_reasoning("think")
    view.handle_complete("Hello")

    assert [m.role for m in view.messages] == [MessageRole.USER, MessageRole.ASSISTANT]
    assert view.messages[1].content == "Hello"
    assert view.messages[1].reasoning == "think"


def test_tool_started_always_opens_new_slot_and_prose_resumes_in_another():
    call = _call()
    view = MessageReconstructor()
    view.add_user_message("add")
    view.handle_chunk("Let me add.")
    view.handle_tool_started(call)
    view.handle_tool_completed(_done(call, 2))
    view.handle_chunk("It is 2.")
    view.handle_complete("It is 2.")

    assert len(view.messages) == 4
    prose, card, answer = view.messages[1:]
    assert prose.content == "Let me add." and prose.tool_call is None
    assert card.tool_call.status == ToolCallStatus.COMPLETED
    assert card.tool_call.result == 2
    assert card.content == ""
    assert answer.content == "It is 2." and answer.tool_call is None


def test_completion_mutates_card_in_place():
    call = _call()
    view = MessageReconstructor()
    card = view.handle_tool_started(call)
    tracked = card.tool_call
    view.handle_tool_completed(_done(call, 7))

    assert view.messages[0] is card
    assert card.tool_call is tracked
    assert tracked.result == 7
    assert tracked.execution_time_ms == 5


def test_repeated_terminal_event_is_idempotent():
    call = _call()
    view = MessageReconstructor()
    view.handle_tool_started(call)
    view.handle_tool_completed(_done(call, 3))
    snapshot = copy.deepcopy(view.messages)

    view.handle_tool_completed(_done(call, 99))
    failed = copy.deepcopy(call)
    failed.fail("late")
    view.handle_tool_failed(failed)

    assert view.messages == snapshot


def test_failed_tool_card():
    call = _call("search", q="x")
    view = MessageReconstructor()
    view.handle_tool_started(call)
    failed = copy.deepcopy(call)
    failed.fail("Network timeout", 10)
    view.handle_tool_failed(failed)

    assert view.messages[0].tool_call.status == ToolCallStatus.FAILED
    assert view.messages[0].tool_call.error == "Network timeout"


def test_error_rolls_back_user_message_and_notifies():
    errors = []
    view = MessageReconstructor(notify_error=errors.append)
    view.add_user_message("first")
    view.handle_chunk("answer")
    view.handle_complete("answer")
    view.add_user_message("second")
    view.handle_error("Connection error: refused")

    assert [m.content for m in view.messages] == ["first", "answer"]
    assert errors == ["Connection error: refused"]
    assert not view.is_streaming


def test_new_turn_after_complete_does_not_reuse_previous_prose_across_user():
    view = MessageReconstructor()
    view.add_user_message("one")
    view.handle_chunk("A")
    view.handle_complete("A")
    view.add_user_message("two")
    view.handle_chunk("B")

    assert [m.content for m in view.messages] == ["one", "A", "two", "B"]


def test_replay_is_a_pure_function_of_events():
    call = _call()
    events = [
        ReconstructionEvent(EventKind.USER, text="q"),
        ReconstructionEvent(EventKind.CHUNK, text="x"),
        ReconstructionEvent(EventKind.TOOL_STARTED, tool_call=call),
        ReconstructionEvent(EventKind.TOOL_COMPLETED, tool_call=_done(call, 1)),
        ReconstructionEvent(EventKind.CHUNK, text="y"),
        ReconstructionEvent(EventKind.COMPLETE, text="y"),
    ]
    first = replay(events)
    second = replay(events)

    assert first == second
    assert [m.content for m in first] == ["q", "x", "", "y"]
    assert call.status == ToolCallStatus.EXECUTING


def test_turn_callbacks_feed_the_view():
    view = MessageReconstructor()
    callbacks = view.turn_callbacks()
    callbacks.emit("on_chunk", "hi")
    callbacks.emit("on_complete", "hi")
    assert view.messages[0].content == "hi"
