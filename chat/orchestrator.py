"""
Turn orchestration: stream, detect tool calls, execute, re-stream.

One call to `Orchestrator.send_turn` handles one user message. The loop is

    STREAMING -> DONE
    STREAMING -> EXECUTING_TOOLS -> STREAMING -> ... -> DONE

with at most `agent.max_iterations` stream calls. Partial output reaches the
caller only through `TurnCallbacks`; the durable history is only extended
once the whole turn has succeeded.
"""
import asyncio
import json
import logging
import uuid
from contextlib import aclosing
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

from llm import INLINE, ProviderTransport, StreamEventKind, TransportError, get_transport
from models import (
    AgentContext,
    ConversationMessage,
    MessageRole,
    ModelConfig,
    ProjectContext,
    ProviderConfig,
    ToolCallDirective,
    ToolCallResult,
    ToolCallStatus,
    ToolDefinition,
    trim_history,
)
from storage import ConfigStore, ConfigurationError, HistoryStore, read_attached_files
from token_counter import count_message_tokens
from tools import ToolCallTable, ToolRouter
from .directives import dedupe_directives, merge_structured_calls, parse_inline_directives, to_openai_tool_calls
from .prompts import build_system_prompt
from .sniffer import MarkerSniffer
import constants as C

logger = logging.getLogger(__name__)


@dataclass
class TurnCallbacks:
    """Outbound notifications for one turn.

    Tool callbacks take a single ToolCallResult snapshot instead of separate
    (tool_name, parameters[, result, execution_time_ms | error]) arguments.
    The snapshot carries all of those fields plus `identity_key`, which the
    display layer needs to match a completion to its card. The orchestrator
    never hands out the object it keeps mutating.
    """
    on_chunk: Optional[Callable[[str], None]] = None
    on_reasoning: Optional[Callable[[str], None]] = None
    on_complete: Optional[Callable[[str], None]] = None
    on_error: Optional[Callable[[str], None]] = None
    on_tool_started: Optional[Callable[[ToolCallResult], None]] = None
    on_tool_completed: Optional[Callable[[ToolCallResult], None]] = None
    on_tool_failed: Optional[Callable[[ToolCallResult], None]] = None

    def emit(self, name: str, *args) -> None:
        callback = getattr(self, name)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("%s callback raised", name)


@dataclass
class StreamSession:
    """Per-turn loop state; discarded when the turn ends."""
    iteration_count: int = 0
    accumulated_text: str = ""
    suppressed_since_index: Optional[int] = None
    messages: list[ConversationMessage] = field(default_factory=list)


@dataclass
class TurnResult:
    text: str
    messages: list[ConversationMessage]
    iterations: int
    capped: bool = False


class Orchestrator:
    """Drives the stream/detect/execute loop for agents."""

    def __init__(
        self,
        config_store: Optional[ConfigStore] = None,
        history_store: Optional[HistoryStore] = None,
        router: Optional[ToolRouter] = None,
        mcp_client=None,
        frontend=None,
        transport_factory: Callable[..., ProviderTransport] = get_transport,
        timeout_ms: int = C.STREAM_TIMEOUT_MS,
    ):
        self.config_store = config_store or ConfigStore()
        self.history_store = history_store
        self.mcp_client = mcp_client
        self.router = router or ToolRouter(mcp_client=mcp_client)
        self.frontend = frontend
        self.transport_factory = transport_factory
        self.timeout_ms = timeout_ms

    async def send_turn(
        self,
        project: Optional[ProjectContext],
        agent: AgentContext,
        user_message: str,
        attached_file_paths: Optional[list[str]] = None,
        callbacks: Optional[TurnCallbacks] = None,
    ) -> Optional[TurnResult]:
        """Run one user turn end to end.

        Returns None when the turn was aborted by a transport error (already
        reported through `on_error`). Configuration problems are reported and
        then raised before any network call.
        """
        callbacks = callbacks or TurnCallbacks()
        try:
            provider = self.config_store.get_provider(agent.provider_id)
            model_config = self.config_store.get_model_config(agent.model_id)
            transport = self.transport_factory(provider.type)
        except ConfigurationError as e:
            logger.error("Cannot start turn for agent %s: %s", agent.name, e)
            callbacks.emit("on_error", str(e))
            raise

        tools = await self._load_tools(agent)
        context = read_attached_files(attached_file_paths or [])
        user = ConversationMessage(role=MessageRole.USER, content=user_message)

        result = await self.run_turn(
            transport,
            agent,
            model_config,
            provider,
            user,
            tools=tools,
            context_messages=context,
            callbacks=callbacks,
        )
        if result is None:
            return None

        agent.history.extend(result.messages)
        if self.history_store is not None and project is not None:
            try:
                self.history_store.save_history(project, agent)
            except OSError as e:
                logger.error("Failed to save history for agent %s: %s", agent.name, e)
        return result

    async def _load_tools(self, agent: AgentContext) -> list[ToolDefinition]:
        if not agent.enable_tools:
            return []
        tools = self.config_store.load_tools()
        if self.mcp_client is not None:
            tools.extend(await self.mcp_client.discover_tools())
        return tools

    async def run_turn(
        self,
        transport: ProviderTransport,
        agent: AgentContext,
        model_config: ModelConfig,
        provider: ProviderConfig,
        user_message: ConversationMessage,
        tools: Optional[list[ToolDefinition]] = None,
        context_messages: Optional[list[ConversationMessage]] = None,
        callbacks: Optional[TurnCallbacks] = None,
    ) -> Optional[TurnResult]:
        """The iteration loop. Does not touch `agent.history`."""
        callbacks = callbacks or TurnCallbacks()
        tools = tools or []
        inline = transport.directive_style == INLINE

        prefix: list[ConversationMessage] = []
        system_prompt = build_system_prompt(agent.system_prompt, tools, inline_tools=inline)
        if system_prompt:
            prefix.append(ConversationMessage(role=MessageRole.SYSTEM, content=system_prompt))
        prefix.extend(context_messages or [])
        history = trim_history(agent.history, agent.context_limit, model_config.model)

        session = StreamSession(messages=[user_message])
        tools_by_name = {t.name: t for t in tools}
        table = ToolCallTable()
        max_iterations = max(1, agent.max_iterations)

        while True:
            session.iteration_count += 1
            request = prefix + history + session.messages
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "Iteration %d: %d messages, ~%d prompt tokens",
                    session.iteration_count,
                    len(request),
                    count_message_tokens([m.to_api_dict() for m in request], model=model_config.model),
                )
            try:
                visible, directives = await self._stream_once(
                    transport, request, model_config, provider, tools, session, callbacks, inline
                )
            except TransportError as e:
                logger.error("Turn aborted on iteration %d: %s", session.iteration_count, e)
                callbacks.emit("on_error", str(e))
                return None
            except ConfigurationError as e:
                callbacks.emit("on_error", str(e))
                raise

            if not directives:
                session.messages.append(
                    ConversationMessage(role=MessageRole.ASSISTANT, content=session.accumulated_text)
                )
                callbacks.emit("on_complete", visible)
                return TurnResult(visible, session.messages, session.iteration_count)

            if session.iteration_count >= max_iterations:
                logger.warning(
                    "Maximum tool call rounds (%d) reached, %d call(s) not executed",
                    max_iterations,
                    len(directives),
                )
                note = f"\n\n{C.MAX_ITERATIONS_NOTE}" if visible else C.MAX_ITERATIONS_NOTE
                callbacks.emit("on_chunk", note)
                text = visible + note
                session.messages.append(ConversationMessage(role=MessageRole.ASSISTANT, content=text))
                callbacks.emit("on_complete", text)
                return TurnResult(text, session.messages, session.iteration_count, capped=True)

            if not inline:
                for directive in directives:
                    directive.call_id = directive.call_id or f"call_{uuid.uuid4().hex[:24]}"
            session.messages.append(
                ConversationMessage(
                    role=MessageRole.ASSISTANT,
                    content=session.accumulated_text,
                    tool_calls=None if inline else to_openai_tool_calls(directives),
                )
            )

            results = await self._execute_tools(directives, tools_by_name, table, callbacks)
            for result in results:
                session.messages.append(self._result_message(result, inline))
            logger.info(
                "Tool round %d finished: %d call(s), %d failed",
                session.iteration_count,
                len(results),
                sum(1 for r in results if r.status == ToolCallStatus.FAILED),
            )

    async def _stream_once(
        self,
        transport: ProviderTransport,
        request: list[ConversationMessage],
        model_config: ModelConfig,
        provider: ProviderConfig,
        tools: list[ToolDefinition],
        session: StreamSession,
        callbacks: TurnCallbacks,
        inline: bool,
    ) -> tuple[str, list[ToolCallDirective]]:
        """One stream call. Returns (visible text, deduped directives)."""
        session.accumulated_text = ""
        session.suppressed_since_index = None
        sniffer = MarkerSniffer() if inline else None
        done_calls: list[dict] = []

        stream = transport.stream(
            request,
            model_config,
            provider,
            timeout_ms=self.timeout_ms,
            tools=None if inline else tools,
        )
        # Close the stream (and any session it owns) as soon as we stop reading
        async with aclosing(stream) as events:
            async for event in events:
                if event.kind == StreamEventKind.TEXT:
                    session.accumulated_text += event.text
                    safe = sniffer.feed(event.text) if sniffer else event.text
                    if safe:
                        callbacks.emit("on_chunk", safe)
                elif event.kind == StreamEventKind.REASONING:
                    if event.text:
                        callbacks.emit("on_reasoning", event.text)
                elif event.kind == StreamEventKind.DONE:
                    done_calls = event.tool_calls
                elif event.kind == StreamEventKind.ERROR:
                    raise TransportError(event.text)

        if sniffer is None:
            return session.accumulated_text, dedupe_directives(merge_structured_calls(done_calls))

        tail = sniffer.finish()
        if tail:
            callbacks.emit("on_chunk", tail)
        session.suppressed_since_index = sniffer.suppressed_since
        directives = parse_inline_directives(session.accumulated_text)
        if sniffer.suppressed and not directives:
            logger.warning("Tool-call marker seen but no valid directive could be parsed")
        return sniffer.forwarded_text, dedupe_directives(directives)

    async def _execute_tools(
        self,
        directives: list[ToolCallDirective],
        tools_by_name: dict[str, ToolDefinition],
        table: ToolCallTable,
        callbacks: TurnCallbacks,
    ) -> list[ToolCallResult]:
        """Run all directives concurrently; results come back in invocation order."""
        for directive in directives:
            callbacks.emit("on_tool_started", replace(table.begin(directive)))

        async def run_one(directive: ToolCallDirective) -> ToolCallResult:
            result = await self.router.execute(
                directive,
                tools_by_name.get(directive.tool_name),
                frontend=self.frontend,
                table=table,
            )
            if result.status == ToolCallStatus.COMPLETED:
                callbacks.emit("on_tool_completed", replace(result))
            else:
                callbacks.emit("on_tool_failed", replace(result))
            return result

        return list(await asyncio.gather(*(run_one(d) for d in directives)))

    def _result_message(self, result: ToolCallResult, inline: bool) -> ConversationMessage:
        if result.status == ToolCallStatus.COMPLETED:
            payload = json.dumps(result.result, indent=2, ensure_ascii=False, default=str)
            content = (
                f'Tool "{result.tool_name}" executed successfully:\n{payload}\n'
                f"(Execution time: {result.execution_time_ms}ms)"
            )
        else:
            content = f'Tool "{result.tool_name}" failed: {result.error}'
        if inline:
            return ConversationMessage(role=MessageRole.USER, content=content)
        return ConversationMessage(role=MessageRole.TOOL, content=content, tool_call_id=result.call_id)
