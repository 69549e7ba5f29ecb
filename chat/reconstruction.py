"""
Consumer-side display model.

MessageReconstructor turns the turn's outbound events into an ordered list
of DisplayMessages. It holds no reference to the orchestrator; replaying the
same events always produces the same list.

Slot rules:
- chunk/reasoning with no open slot reuses the last message if it is
  assistant prose, otherwise opens a new assistant message
- chunk/reasoning right after a tool card always opens a new message
- tool-started always appends a new tool card
- tool-completed/tool-failed update the tracked card in place
- complete closes the slot; error closes it and drops the user message that
  started the turn
"""
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, Optional

from models import DisplayMessage, MessageRole, ToolCallResult
from .orchestrator import TurnCallbacks

logger = logging.getLogger(__name__)


class EventKind(Enum):
    USER = "user"
    CHUNK = "chunk"
    REASONING = "reasoning"
    COMPLETE = "complete"
    ERROR = "error"
    TOOL_STARTED = "tool-started"
    TOOL_COMPLETED = "tool-completed"
    TOOL_FAILED = "tool-failed"


@dataclass
class ReconstructionEvent:
    kind: EventKind
    text: str = ""
    tool_call: Optional[ToolCallResult] = None


class MessageReconstructor:
    def __init__(self, notify_error: Optional[Callable[[str], None]] = None):
        self.messages: list[DisplayMessage] = []
        self.notify_error = notify_error
        self.is_streaming = False
        self._active_tools: dict[str, ToolCallResult] = {}

    def add_user_message(self, text: str) -> DisplayMessage:
        message = DisplayMessage(role=MessageRole.USER, content=text)
        self.messages.append(message)
        return message

    def apply(self, event: ReconstructionEvent) -> None:
        handler = {
            EventKind.USER: lambda: self.add_user_message(event.text),
            EventKind.CHUNK: lambda: self.handle_chunk(event.text),
            EventKind.REASONING: lambda: self.handle_reasoning(event.text),
            EventKind.COMPLETE: lambda: self.handle_complete(event.text),
            EventKind.ERROR: lambda: self.handle_error(event.text),
            EventKind.TOOL_STARTED: lambda: self.handle_tool_started(event.tool_call),
            EventKind.TOOL_COMPLETED: lambda: self.handle_tool_completed(event.tool_call),
            EventKind.TOOL_FAILED: lambda: self.handle_tool_failed(event.tool_call),
        }[event.kind]
        handler()

    def handle_chunk(self, text: str) -> None:
        slot = self._ensure_streaming_slot()
        slot.content += text

    def handle_reasoning(self, text: str) -> None:
        slot = self._ensure_streaming_slot()
        slot.reasoning = (slot.reasoning or "") + text

    def handle_complete(self, text: str = "") -> None:
        self.is_streaming = False
        self._active_tools.clear()

    def handle_error(self, error: str) -> None:
        self.is_streaming = False
        self._active_tools.clear()
        for i in range(len(self.messages) - 1, -1, -1):
            if self.messages[i].role == MessageRole.USER:
                del self.messages[i]
                break
        if self.notify_error is not None:
            self.notify_error(error)
        else:
            logger.error("Turn failed: %s", error)

    def handle_tool_started(self, call: ToolCallResult) -> DisplayMessage:
        tracked = replace(call)
        message = DisplayMessage(role=MessageRole.ASSISTANT, content="", tool_call=tracked)
        self.messages.append(message)
        self._active_tools[tracked.identity_key] = tracked
        return message

    def handle_tool_completed(self, call: ToolCallResult) -> None:
        tracked = self._active_tools.pop(call.identity_key, None)
        if tracked is None:
            logger.debug("No active tool card for %s", call.identity_key)
            return
        tracked.complete(call.result, call.execution_time_ms)

    def handle_tool_failed(self, call: ToolCallResult) -> None:
        tracked = self._active_tools.pop(call.identity_key, None)
        if tracked is None:
            logger.debug("No active tool card for %s", call.identity_key)
            return
        tracked.fail(call.error or "Tool execution failed", call.execution_time_ms)

    def turn_callbacks(self) -> TurnCallbacks:
        """Callbacks that feed this reconstructor from a live turn."""
        return TurnCallbacks(
            on_chunk=self.handle_chunk,
            on_reasoning=self.handle_reasoning,
            on_complete=self.handle_complete,
            on_error=self.handle_error,
            on_tool_started=self.handle_tool_started,
            on_tool_completed=self.handle_tool_completed,
            on_tool_failed=self.handle_tool_failed,
        )

    def _ensure_streaming_slot(self) -> DisplayMessage:
        self.is_streaming = True
        last = self.messages[-1] if self.messages else None
        if last is not None and last.role == MessageRole.ASSISTANT and last.tool_call is None:
            return last

        message = DisplayMessage(role=MessageRole.ASSISTANT)
        self.messages.append(message)
        return message


def replay(events: Iterable[ReconstructionEvent], notify_error: Optional[Callable[[str], None]] = None) -> list[DisplayMessage]:
    """Build a fresh display list from an event sequence."""
    reconstructor = MessageReconstructor(notify_error=notify_error)
    for event in events:
        reconstructor.apply(event)
    return reconstructor.messages
