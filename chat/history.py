"""Rebuild display messages from a persisted conversation history."""
import json
import logging
import re
from typing import Optional

from models import (
    ConversationMessage,
    DisplayMessage,
    MessageRole,
    ToolCallResult,
    ToolCallStatus,
)
from .directives import merge_structured_calls, parse_inline_directives
from .sniffer import MarkerSniffer

logger = logging.getLogger(__name__)

_SUCCESS_RE = re.compile(r'^Tool "(?P<name>.+?)" executed successfully:\n(?P<body>.*)\n\(Execution time: (?P<ms>\d+)ms\)$', re.S)
_FAILED_RE = re.compile(r'^Tool "(?P<name>.+?)" failed: (?P<error>.*)$', re.S)


def parse_tool_result_content(content: str) -> tuple[Optional[str], ToolCallStatus, object, Optional[str], Optional[int]]:
    """Split a tool-result message into (tool name, status, result, error, ms)."""
    match = _SUCCESS_RE.match(content or "")
    if match:
        body = match.group("body")
        try:
            result = json.loads(body)
        except json.JSONDecodeError:
            result = body
        return match.group("name"), ToolCallStatus.COMPLETED, result, None, int(match.group("ms"))
    match = _FAILED_RE.match(content or "")
    if match:
        return match.group("name"), ToolCallStatus.FAILED, None, match.group("error"), None
    return None, ToolCallStatus.COMPLETED, content, None, None


def _apply_result(call: ToolCallResult, content: str) -> None:
    _, status, result, error, ms = parse_tool_result_content(content)
    if status == ToolCallStatus.FAILED:
        call.fail(error, ms)
    else:
        call.complete(result, ms)


def history_to_display(messages: list[ConversationMessage]) -> list[DisplayMessage]:
    """Display list for a saved history.

    System messages are skipped. Assistant text that came with tool calls
    becomes its own message, followed by one card per call; tool results are
    merged onto their cards (by tool_call_id for structured calls, by order
    and name for inline ones). Cards with no result stay executing.
    """
    display: list[DisplayMessage] = []
    by_call_id: dict[str, ToolCallResult] = {}
    pending_inline: list[ToolCallResult] = []

    for msg in messages:
        if msg.role == MessageRole.SYSTEM:
            continue

        if msg.role == MessageRole.TOOL:
            call = by_call_id.pop(msg.tool_call_id, None) if msg.tool_call_id else None
            if call is None:
                logger.debug("Skipping tool result without a matching call: %s", msg.tool_call_id)
                continue
            _apply_result(call, msg.content)
            continue

        if msg.role == MessageRole.USER:
            name = parse_tool_result_content(msg.content)[0]
            if name and pending_inline:
                call = next((c for c in pending_inline if c.tool_name == name), None)
                if call is not None:
                    pending_inline.remove(call)
                    _apply_result(call, msg.content)
                    continue
            display.append(DisplayMessage(role=MessageRole.USER, content=msg.content or ""))
            continue

        # assistant
        content = msg.content or ""
        if msg.tool_calls:
            calls = [_structured_call(tc) for tc in msg.tool_calls if isinstance(tc, dict)]
            if content.strip():
                display.append(DisplayMessage(role=MessageRole.ASSISTANT, content=content))
            for call in calls:
                if call.call_id:
                    by_call_id[call.call_id] = call
                display.append(DisplayMessage(role=MessageRole.ASSISTANT, tool_call=call))
            continue

        directives = parse_inline_directives(content)
        if not directives:
            display.append(DisplayMessage(role=MessageRole.ASSISTANT, content=content))
            continue

        sniffer = MarkerSniffer()
        sniffer.feed(content)
        prose = sniffer.forwarded_text.strip()
        if prose:
            display.append(DisplayMessage(role=MessageRole.ASSISTANT, content=prose))
        for directive in directives:
            call = ToolCallResult(tool_name=directive.tool_name, parameters=directive.parameters)
            pending_inline.append(call)
            display.append(DisplayMessage(role=MessageRole.ASSISTANT, tool_call=call))

    return display


def _structured_call(tool_call: dict) -> ToolCallResult:
    function = tool_call.get("function") or {}
    name = str(function.get("name") or "")
    merged = merge_structured_calls([{"id": tool_call.get("id"), "name": name, "arguments": function.get("arguments")}])
    parameters = merged[0].parameters if merged else {}
    return ToolCallResult(tool_name=name, parameters=parameters, call_id=tool_call.get("id"))
