"""Anthropic Messages API transport."""
import logging
from typing import Optional

from models import ConversationMessage, MessageRole, ModelConfig, ProviderConfig, ToolDefinition
import constants as C

from .base import INLINE, ProviderTransport, StreamEvent, StreamEventKind

logger = logging.getLogger(__name__)


def to_anthropic_messages(messages: list[ConversationMessage]) -> tuple[str, list[dict]]:
    """Split out the system prompt and map the rest to user/assistant turns.

    System messages are concatenated into the separate `system` field. Tool
    results are sent as user turns, and consecutive turns with the same role
    are merged because the API requires alternation.
    """
    system_parts = []
    out: list[dict] = []
    for msg in messages:
        if msg.role == MessageRole.SYSTEM:
            system_parts.append(msg.content)
            continue
        role = "assistant" if msg.role == MessageRole.ASSISTANT else "user"
        content = msg.content or ""
        if out and out[-1]["role"] == role:
            out[-1]["content"] += "\n\n" + content
        else:
            out.append({"role": role, "content": content})
    return "\n\n".join(system_parts).strip(), out


class AnthropicTransport(ProviderTransport):
    """Streams `/v1/messages`; tool calls travel inline in the text."""

    name = "anthropic"
    directive_style = INLINE

    def build_request(
        self,
        messages: list[ConversationMessage],
        model_config: ModelConfig,
        provider: ProviderConfig,
        tools: Optional[list[ToolDefinition]] = None,
    ) -> tuple[str, dict, dict]:
        base_url = provider.resolved_base_url()
        system_prompt, anthropic_messages = to_anthropic_messages(messages)
        headers = {
            "Content-Type": "application/json",
            "x-api-key": provider.api_key,
            "anthropic-version": C.ANTHROPIC_VERSION,
        }
        body = {
            "model": model_config.model,
            "messages": anthropic_messages,
            "max_tokens": model_config.max_tokens or C.ANTHROPIC_DEFAULT_MAX_TOKENS,
            "stream": True,
        }
        if system_prompt:
            body["system"] = system_prompt
        if model_config.temperature is not None:
            body["temperature"] = model_config.temperature
        if model_config.top_p is not None:
            body["top_p"] = model_config.top_p
        body.update(model_config.extra or {})
        return f"{base_url}{C.API_ANTHROPIC_MESSAGES}", headers, body

    def parse_payload(self, payload: dict, state: dict) -> list[StreamEvent]:
        event_type = payload.get("type")
        if event_type == "content_block_delta":
            delta = payload.get("delta") or {}
            if delta.get("type") == "thinking_delta" and delta.get("thinking"):
                return [StreamEvent(StreamEventKind.REASONING, text=delta["thinking"])]
            if delta.get("text"):
                return [StreamEvent(StreamEventKind.TEXT, text=delta["text"])]
        elif event_type == "message_stop":
            return [StreamEvent(StreamEventKind.DONE)]
        return []
