#!/usr/bin/env python3
"""
AgentDesk - console driver

Sends one message to an agent and streams the reply to the terminal,
including tool calls as they start and finish. Providers, model configs,
tools and MCP servers are read from ~/.config/AgentDesk/.
"""
import argparse
import asyncio
import logging
import os
import sys

from chat import MessageReconstructor, Orchestrator, TurnCallbacks
from mcp_discovery import MCPClient
from models import AgentContext, ProjectContext, ToolCallResult
from storage import ConfigStore, ConfigurationError, HistoryStore
import constants as C

logger = logging.getLogger(__name__)


def _parse_args(argv):
    parser = argparse.ArgumentParser(description="Send one message to an AgentDesk agent.")
    parser.add_argument("message", help="user message")
    parser.add_argument("--provider", required=True, help="provider id from providers.json")
    parser.add_argument("--model", required=True, help="model config id from models.json")
    parser.add_argument("--agent", default="default", help="agent name (history file)")
    parser.add_argument("--project", default=None, help="project directory; enables saved history")
    parser.add_argument("--system", default="", help="system prompt")
    parser.add_argument("--file", action="append", default=[], help="attach a file (repeatable)")
    parser.add_argument("--no-tools", action="store_true", help="disable tool calls")
    parser.add_argument("--max-iterations", type=int, default=C.MAX_ITERATIONS)
    parser.add_argument("--debug", action="store_true", help="verbose logging")
    return parser.parse_args(argv)


def _console_callbacks(view: MessageReconstructor) -> TurnCallbacks:
    """Print the turn as it happens and keep the display model in sync."""
    def on_chunk(text: str):
        view.handle_chunk(text)
        sys.stdout.write(text)
        sys.stdout.flush()

    def on_tool_started(call: ToolCallResult):
        view.handle_tool_started(call)
        print(f"\n[tool] {call.tool_name} {call.parameters} ...")

    def on_tool_completed(call: ToolCallResult):
        view.handle_tool_completed(call)
        print(f"[tool] {call.tool_name} -> {call.result!r} ({call.execution_time_ms}ms)")

    def on_tool_failed(call: ToolCallResult):
        view.handle_tool_failed(call)
        print(f"[tool] {call.tool_name} failed: {call.error}")

    def on_complete(text: str):
        view.handle_complete(text)
        print()

    return TurnCallbacks(
        on_chunk=on_chunk,
        on_reasoning=view.handle_reasoning,
        on_complete=on_complete,
        on_error=view.handle_error,
        on_tool_started=on_tool_started,
        on_tool_completed=on_tool_completed,
        on_tool_failed=on_tool_failed,
    )


async def run(args) -> int:
    config_store = ConfigStore()
    history_store = HistoryStore()
    project = None
    agent = AgentContext(
        name=args.agent,
        provider_id=args.provider,
        model_id=args.model,
        system_prompt=args.system,
        enable_tools=not args.no_tools,
        max_iterations=args.max_iterations,
    )
    if args.project:
        project = ProjectContext(path=os.path.abspath(args.project), name=os.path.basename(args.project))
        agent.history = history_store.load_history(project, agent.name)
        logger.info("Loaded %d history messages for %s", len(agent.history), agent.name)

    mcp_servers = config_store.load_mcp_servers()
    orchestrator = Orchestrator(
        config_store=config_store,
        history_store=history_store,
        mcp_client=MCPClient(mcp_servers) if mcp_servers else None,
    )

    def notify_error(message: str):
        print(f"\nError: {message}", file=sys.stderr)

    view = MessageReconstructor(notify_error=notify_error)
    view.add_user_message(args.message)
    try:
        result = await orchestrator.send_turn(
            project,
            agent,
            args.message,
            attached_file_paths=args.file,
            callbacks=_console_callbacks(view),
        )
    except ConfigurationError:
        return 2
    if result is None:
        return 1
    if result.capped:
        logger.warning("Stopped after %d iterations", result.iterations)
    return 0


def main(argv=None):
    """Main entry point."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
