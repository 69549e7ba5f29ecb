"""OpenAI-compatible chat completions transport (OpenAI, Azure, custom endpoints)."""
import logging
from typing import Optional

from models import ConversationMessage, ModelConfig, ProviderConfig, ToolDefinition
from storage import ConfigurationError
import constants as C

from .base import INLINE, ProviderTransport, StreamEvent, StreamEventKind

logger = logging.getLogger(__name__)


def content_to_text(content: object) -> str:
    """Convert string or content-part deltas to text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and isinstance(item.get("text"), str):
                parts.append(item["text"])
        return "".join(parts)
    return str(content)


class OpenAITransport(ProviderTransport):
    """Streams `/chat/completions`; tool calls travel inline in the text."""

    name = "openai"
    directive_style = INLINE

    def build_request(
        self,
        messages: list[ConversationMessage],
        model_config: ModelConfig,
        provider: ProviderConfig,
        tools: Optional[list[ToolDefinition]] = None,
    ) -> tuple[str, dict, dict]:
        base_url = provider.resolved_base_url()
        if not base_url:
            raise ConfigurationError(f"Base URL is required for {provider.type.value} providers")
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {provider.api_key}",
        }
        body = {
            "messages": [m.to_api_dict() for m in messages],
            "stream": True,
            **model_config.to_dict(),
        }
        return f"{base_url}{C.API_CHAT_COMPLETIONS}", headers, body

    def parse_payload(self, payload: dict, state: dict) -> list[StreamEvent]:
        choice = (payload.get("choices") or [{}])[0] or {}
        delta = choice.get("delta") or {}
        events = []

        # Some OpenAI-compatible servers stream reasoning out of band
        reasoning = delta.get("reasoning_content") or delta.get("reasoning")
        if isinstance(reasoning, str) and reasoning:
            events.append(StreamEvent(StreamEventKind.REASONING, text=reasoning))

        text = content_to_text(delta.get("content"))
        if text:
            events.append(StreamEvent(StreamEventKind.TEXT, text=text))

        if choice.get("finish_reason"):
            events.append(StreamEvent(StreamEventKind.DONE))
        return events
