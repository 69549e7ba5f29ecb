"""
Tool-call directive parsing.

Two encodings reduce to the same ToolCallDirective:

- inline: a JSON object embedded in the assistant text, e.g.
  {"toolname": "add", "parameters": {"a": 1, "b": 2}}
- structured: provider-native tool-call fields merged by the transport into
  {"id", "name", "arguments"} entries.

Malformed directives are dropped without raising; garbled model output is
expected and must not abort a turn.
"""
import json
import logging
from typing import Iterable

from models import ToolCallDirective, canonical_json
import constants as C

logger = logging.getLogger(__name__)

_decoder = json.JSONDecoder()


def parse_inline_directives(text: str, key: str = C.TOOL_CALL_KEY) -> list[ToolCallDirective]:
    """Find every inline directive in accumulated text, in order of appearance.

    Any JSON object carrying the `key` property counts, wherever it appears,
    including inside fenced code blocks.
    """
    directives: list[ToolCallDirective] = []
    marker = f'"{key}"'
    if not text or marker not in text:
        return directives

    consumed = 0
    pos = text.find(marker)
    while pos != -1:
        found = None
        # Innermost enclosing object first, then walk outwards
        start = text.rfind("{", consumed, pos)
        while start != -1:
            directive, end = _decode_directive(text, start)
            if directive is not None and end > pos:
                found = (directive, end)
                break
            start = text.rfind("{", consumed, start)
        if found is not None:
            directives.append(found[0])
            consumed = found[1]
            pos = text.find(marker, consumed)
        else:
            pos = text.find(marker, pos + len(marker))
    return directives


def _decode_directive(text: str, start: int):
    try:
        obj, end = _decoder.raw_decode(text, start)
    except json.JSONDecodeError as e:
        logger.debug("Ignoring malformed tool-call directive at %d: %s", start, e)
        return None, start
    if not isinstance(obj, dict):
        return None, start
    name = obj.get(C.TOOL_CALL_KEY)
    params = obj.get(C.TOOL_PARAMS_KEY, {})
    if not isinstance(name, str) or not name.strip():
        logger.debug("Ignoring directive without a tool name: %r", obj)
        return None, start
    if params is None:
        params = {}
    if not isinstance(params, dict):
        logger.debug("Ignoring directive with non-object parameters: %r", obj)
        return None, start
    return ToolCallDirective(tool_name=name.strip(), parameters=params), end


def merge_structured_calls(calls: Iterable[dict]) -> list[ToolCallDirective]:
    """Turn transport-merged {"id", "name", "arguments"} entries into directives."""
    directives = []
    for call in calls or []:
        name = str(call.get("name") or "").strip()
        if not name:
            continue
        arguments = call.get("arguments")
        if isinstance(arguments, dict):
            params = arguments
        else:
            raw = str(arguments or "").strip()
            if not raw:
                params = {}
            else:
                try:
                    params = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Failed to parse tool call arguments for %s: %s", name, raw)
                    continue
        if not isinstance(params, dict):
            logger.warning("Ignoring %s call with non-object arguments", name)
            continue
        directives.append(ToolCallDirective(tool_name=name, parameters=params, call_id=call.get("id")))
    return directives


def canonical_parameters(parameters: dict) -> str:
    return canonical_json(parameters or {})


def dedupe_directives(directives: list[ToolCallDirective]) -> list[ToolCallDirective]:
    """Drop repeated identical calls within one model turn, keeping first-seen order."""
    seen = set()
    unique = []
    for directive in directives:
        key = directive.identity_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(directive)
    if len(unique) != len(directives):
        logger.warning("Detected %d duplicate tool calls, removing them", len(directives) - len(unique))
    return unique


def to_openai_tool_calls(directives: list[ToolCallDirective]) -> list[dict]:
    """Assistant-message `tool_calls` entries for structured-form history."""
    return [
        {
            "id": d.call_id,
            "type": "function",
            "function": {"name": d.tool_name, "arguments": json.dumps(d.parameters, ensure_ascii=False)},
        }
        for d in directives
    ]
