"""GLM (Zhipu AI) transport with native, OpenAI-style tool calling."""
import logging
from typing import Optional

from models import ConversationMessage, ModelConfig, ProviderConfig, ToolDefinition

from .base import STRUCTURED, StreamEvent, StreamEventKind
from .openai import OpenAITransport, content_to_text

logger = logging.getLogger(__name__)


class GLMTransport(OpenAITransport):
    """Streams `/chat/completions` with `tools`; tool calls arrive as deltas.

    Tool-call fragments are merged by index while streaming and handed over
    on the DONE event as raw {"id", "name", "arguments"} entries.
    """

    name = "glm"
    directive_style = STRUCTURED

    def build_request(
        self,
        messages: list[ConversationMessage],
        model_config: ModelConfig,
        provider: ProviderConfig,
        tools: Optional[list[ToolDefinition]] = None,
    ) -> tuple[str, dict, dict]:
        url, headers, body = super().build_request(messages, model_config, provider, tools)
        native_tools = [t.to_function_schema() for t in (tools or []) if t.enabled]
        if native_tools:
            body["tools"] = native_tools
            body["tool_choice"] = "auto"
        # Model-specific settings win over defaults
        body.update(model_config.extra or {})
        return url, headers, body

    def new_state(self) -> dict:
        return {"calls": []}

    def parse_payload(self, payload: dict, state: dict) -> list[StreamEvent]:
        choice = (payload.get("choices") or [{}])[0] or {}
        delta = choice.get("delta") or {}
        events = []

        for fragment in delta.get("tool_calls") or []:
            if isinstance(fragment, dict):
                self._merge_fragment(fragment, state["calls"])

        reasoning = delta.get("reasoning_content")
        if isinstance(reasoning, str) and reasoning:
            events.append(StreamEvent(StreamEventKind.REASONING, text=reasoning))

        text = content_to_text(delta.get("content"))
        if text:
            events.append(StreamEvent(StreamEventKind.TEXT, text=text))

        if choice.get("finish_reason"):
            events.append(self.end_of_stream(state))
        return events

    def end_of_stream(self, state: dict) -> StreamEvent:
        calls = [dict(c) for c in state.get("calls", []) if c.get("name")]
        return StreamEvent(StreamEventKind.DONE, tool_calls=calls)

    def _merge_fragment(self, fragment: dict, calls: list[dict]) -> None:
        index = fragment.get("index")
        if not isinstance(index, int):
            index = len(calls) if fragment.get("id") else max(len(calls) - 1, 0)
        while len(calls) <= index:
            calls.append({"id": None, "name": "", "arguments": ""})
        target = calls[index]
        if fragment.get("id"):
            target["id"] = fragment["id"]
        function = fragment.get("function") or {}
        if function.get("name"):
            target["name"] = function["name"]
        arguments = function.get("arguments")
        if isinstance(arguments, str):
            target["arguments"] += arguments
        elif isinstance(arguments, dict):
            # Some servers send already-decoded arguments in one piece
            target["arguments"] = arguments
