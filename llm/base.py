"""
Streaming transport base class.

A transport opens one streaming request against a provider endpoint and
turns the server-sent-event body into an ordered sequence of StreamEvents.
Framing, cancellation and error mapping live here; subclasses only shape the
request body and interpret decoded payloads.
"""
import asyncio
import codecs
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Optional

import aiohttp

from models import ConversationMessage, ModelConfig, ProviderConfig, ToolDefinition
import constants as C

logger = logging.getLogger(__name__)

INLINE = "inline"
STRUCTURED = "structured"


class TransportError(Exception):
    """Raised when a stream ends with an error event (network, HTTP, timeout)."""
    pass


class StreamEventKind(Enum):
    TEXT = "text"
    REASONING = "reasoning"
    DONE = "done"
    ERROR = "error"


@dataclass
class StreamEvent:
    """One decoded fragment or terminal marker from a provider stream.

    `tool_calls` is only set on DONE events of structured-style providers and
    holds raw {"id", "name", "arguments"} entries in index order.
    """
    kind: StreamEventKind
    text: str = ""
    tool_calls: list[dict] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.kind in (StreamEventKind.DONE, StreamEventKind.ERROR)


class SSELineDecoder:
    """Incremental UTF-8 line splitter for text/event-stream bodies."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, data: bytes) -> list[str]:
        self._buffer += self._decoder.decode(data)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return lines

    def flush(self) -> list[str]:
        self._buffer += self._decoder.decode(b"", final=True)
        rest, self._buffer = self._buffer, ""
        return [rest] if rest else []


class ProviderTransport:
    """Interface for provider streaming transports.

    Subclasses implement `build_request` and `parse_payload`; `stream` is the
    capability the orchestrator depends on.
    """

    name = "base"
    directive_style = INLINE

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self.session = session

    def build_request(
        self,
        messages: list[ConversationMessage],
        model_config: ModelConfig,
        provider: ProviderConfig,
        tools: Optional[list[ToolDefinition]] = None,
    ) -> tuple[str, dict, dict]:
        """Return (url, headers, json body) for one streaming request."""
        raise NotImplementedError

    def new_state(self) -> dict:
        """Per-stream scratch state handed to `parse_payload`."""
        return {}

    def parse_payload(self, payload: dict, state: dict) -> list[StreamEvent]:
        """Map one decoded SSE payload to zero or more events."""
        raise NotImplementedError

    def end_of_stream(self, state: dict) -> StreamEvent:
        """Terminal event when the body ends without an explicit stop marker."""
        return StreamEvent(StreamEventKind.DONE)

    async def stream(
        self,
        messages: list[ConversationMessage],
        model_config: ModelConfig,
        provider: ProviderConfig,
        timeout_ms: int = C.STREAM_TIMEOUT_MS,
        tools: Optional[list[ToolDefinition]] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one completion.

        Yields text/reasoning events in arrival order, then exactly one DONE
        or ERROR event. Nothing is yielded after `timeout_ms` has elapsed; a
        timeout is reported as an ERROR event.
        """
        url, headers, body = self.build_request(messages, model_config, provider, tools)
        timeout_s = timeout_ms / 1000.0
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s

        session = self.session
        owns_session = session is None
        if owns_session:
            session = aiohttp.ClientSession()

        logger.info(
            "Streaming %s request: model=%s messages=%d tools=%d",
            self.name,
            model_config.model,
            len(messages),
            len(body.get("tools") or []),
        )
        try:
            async with session.post(
                url,
                json=body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout_s),
            ) as resp:
                if resp.status < 200 or resp.status >= 300:
                    error_text = await resp.text()
                    yield StreamEvent(
                        StreamEventKind.ERROR,
                        text=f"API request failed ({resp.status}): {error_text}",
                    )
                    return

                decoder = SSELineDecoder()
                state = self.new_state()
                chunks = resp.content.iter_any().__aiter__()
                while True:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        raise asyncio.TimeoutError()
                    try:
                        data = await asyncio.wait_for(chunks.__anext__(), timeout=remaining)
                    except StopAsyncIteration:
                        break
                    for event in self._events_from_lines(decoder.feed(data), state):
                        yield event
                        if event.is_terminal:
                            return

                for event in self._events_from_lines(decoder.flush(), state):
                    yield event
                    if event.is_terminal:
                        return
                yield self.end_of_stream(state)
        except asyncio.TimeoutError:
            logger.warning("%s stream timed out after %d ms", self.name, timeout_ms)
            yield StreamEvent(StreamEventKind.ERROR, text=f"Request timed out after {timeout_ms} ms")
        except aiohttp.ClientError as e:
            logger.error("%s stream failed: %s", self.name, e)
            yield StreamEvent(StreamEventKind.ERROR, text=f"Connection error: {e}")
        finally:
            if owns_session:
                await session.close()

    def _events_from_lines(self, lines: list[str], state: dict) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for line in lines:
            trimmed = line.strip()
            if not trimmed or not trimmed.startswith(C.SSE_DATA_PREFIX):
                continue
            if trimmed == C.SSE_DONE:
                events.append(self.end_of_stream(state))
                break
            try:
                payload = json.loads(trimmed[len(C.SSE_DATA_PREFIX):])
            except json.JSONDecodeError as e:
                logger.debug("Failed to parse SSE chunk: %s", e)
                continue
            if not isinstance(payload, dict):
                continue
            if isinstance(payload.get("error"), dict):
                message = payload["error"].get("message") or json.dumps(payload["error"])
                events.append(StreamEvent(StreamEventKind.ERROR, text=f"Provider error: {message}"))
                break
            events.extend(self.parse_payload(payload, state))
            if events and events[-1].is_terminal:
                break
        return events
