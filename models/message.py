"""
Data models for conversation history, tool calls and display messages.

Providers are stateless: every request carries the full message history.
The durable history belongs to the agent and is only appended to by the
orchestrator while a turn runs; display messages are owned by the consumer
side and rebuilt from events.
"""
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from token_counter import count_text_tokens


class MessageRole(Enum):
    """Role of the message sender."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallStatus(Enum):
    """Lifecycle of a single tool call."""
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


def canonical_json(value: Any) -> str:
    """Stable JSON used for call identity (sorted keys, compact separators)."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def tool_call_key(tool_name: str, parameters: Optional[dict]) -> str:
    """Identity key of a logical tool call."""
    return f"{tool_name}|{canonical_json(parameters or {})}"


@dataclass
class ConversationMessage:
    """One entry of the conversation log sent to the provider."""
    role: MessageRole
    content: str
    tool_call_id: Optional[str] = None
    tool_calls: Optional[list[dict]] = None  # structured-form calls on assistant turns
    timestamp: datetime = field(default_factory=datetime.now)

    def to_api_dict(self) -> dict:
        """Convert to OpenAI-compatible request format."""
        msg = {"role": self.role.value, "content": self.content}
        if self.role == MessageRole.TOOL and self.tool_call_id:
            msg["tool_call_id"] = self.tool_call_id
        if self.role == MessageRole.ASSISTANT and self.tool_calls:
            msg["tool_calls"] = self.tool_calls
        return msg

    def __str__(self) -> str:
        return f"{self.role.value}: {self.content[:50]}..."


@dataclass
class ToolCallDirective:
    """A parsed "call this tool with these parameters" instruction."""
    tool_name: str
    parameters: dict = field(default_factory=dict)
    call_id: Optional[str] = None

    @property
    def identity_key(self) -> str:
        return tool_call_key(self.tool_name, self.parameters)


@dataclass
class ToolCallResult:
    """Outcome of one tool call; terminal status is reached exactly once."""
    tool_name: str
    parameters: dict
    status: ToolCallStatus = ToolCallStatus.EXECUTING
    result: Any = None
    error: Optional[str] = None
    execution_time_ms: Optional[int] = None
    call_id: Optional[str] = None

    @property
    def identity_key(self) -> str:
        return tool_call_key(self.tool_name, self.parameters)

    @property
    def is_terminal(self) -> bool:
        return self.status != ToolCallStatus.EXECUTING

    def complete(self, result: Any, execution_time_ms: Optional[int] = None) -> bool:
        """Mark completed. Returns False if already terminal."""
        if self.is_terminal:
            return False
        self.status = ToolCallStatus.COMPLETED
        self.result = result
        self.execution_time_ms = execution_time_ms
        return True

    def fail(self, error: str, execution_time_ms: Optional[int] = None) -> bool:
        """Mark failed. Returns False if already terminal."""
        if self.is_terminal:
            return False
        self.status = ToolCallStatus.FAILED
        self.error = error
        self.execution_time_ms = execution_time_ms
        return True


@dataclass
class DisplayMessage:
    """A message as shown by the UI: prose, reasoning aside, or tool card."""
    role: MessageRole
    content: str = ""
    reasoning: Optional[str] = None
    tool_call: Optional[ToolCallResult] = None


def trim_history(
    messages: list[ConversationMessage],
    max_tokens: Optional[int],
    model: Optional[str] = None,
) -> list[ConversationMessage]:
    """Sliding window over durable history.

    Keeps the most recent messages that fit in `max_tokens`. A tool result is
    never kept without the assistant message that requested it, so the window
    start is moved past leading tool-role entries.
    """
    if max_tokens is None:
        return list(messages)

    total = 0
    keep_from = len(messages)
    for i in range(len(messages) - 1, -1, -1):
        tokens = count_text_tokens(messages[i].content, model=model)
        if total + tokens > max_tokens and total > 0:
            break
        total += tokens
        keep_from = i

    while keep_from < len(messages) and messages[keep_from].role == MessageRole.TOOL:
        keep_from += 1
    return list(messages[keep_from:])
