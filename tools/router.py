"""
Tool router: validates a directive against its tool definition and runs it
in the right execution context.

- custom tools with environment "node" run in a one-shot worker subprocess
- custom tools with environment "browser" go through the front-end bridge,
  or fall back to the worker when no bridge is attached
- MCP tools are called on their server through the MCP client
"""
import asyncio
import json
import logging
import os
import sys
import time
from typing import Any, Optional

from models import (
    ExecutionEnvironment,
    ToolCallDirective,
    ToolCallResult,
    ToolDefinition,
    ToolType,
)
from .errors import FrontendBusyError, ToolExecutionError
from .tracking import ToolCallTable
from .validation import validate_parameters
import constants as C

logger = logging.getLogger(__name__)

WORKER_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "worker.py")


class ToolRouter:
    """Executes tool-call directives; every failure becomes a failed result."""

    def __init__(self, mcp_client=None, python: str = sys.executable, worker_path: str = WORKER_PATH):
        self.mcp_client = mcp_client
        self.python = python
        self.worker_path = worker_path

    def validate(self, directive: ToolCallDirective, tool: Optional[ToolDefinition]) -> Optional[str]:
        """First validation failure for this call, or None when it may run."""
        if tool is None:
            return f'Tool "{directive.tool_name}" not found'
        if not tool.enabled:
            return f'Tool "{directive.tool_name}" is disabled'
        return validate_parameters(directive.parameters, tool.parameters)

    async def execute(
        self,
        directive: ToolCallDirective,
        tool: Optional[ToolDefinition],
        frontend=None,
        table: Optional[ToolCallTable] = None,
    ) -> ToolCallResult:
        """Run one directive to a terminal ToolCallResult. Never raises for tool problems."""
        if table is not None:
            call = table.begin(directive)
        else:
            call = ToolCallResult(
                tool_name=directive.tool_name,
                parameters=directive.parameters,
                call_id=directive.call_id,
            )

        error = self.validate(directive, tool)
        if error:
            logger.info("Tool %s rejected: %s", directive.tool_name, error)
            call.fail(error, 0)
            return call

        logger.info("Executing tool %s (%s)", tool.name, self._route_name(tool, frontend))
        start = time.monotonic()
        try:
            result = await self._dispatch(tool, directive.parameters, frontend)
        except ToolExecutionError as e:
            call.fail(str(e), _elapsed_ms(start))
            logger.warning("Tool %s failed: %s", tool.name, e)
        except FrontendBusyError:
            raise
        except Exception as e:
            call.fail(f"{type(e).__name__}: {e}", _elapsed_ms(start))
            logger.exception("Unexpected error executing tool %s", tool.name)
        else:
            call.complete(result, _elapsed_ms(start))
            logger.info("Tool %s completed in %d ms", tool.name, call.execution_time_ms)
        return call

    def _route_name(self, tool: ToolDefinition, frontend) -> str:
        if tool.tool_type == ToolType.MCP:
            return "mcp"
        if tool.environment == ExecutionEnvironment.BROWSER and frontend is not None:
            return "frontend"
        return "worker"

    async def _dispatch(self, tool: ToolDefinition, parameters: dict, frontend) -> Any:
        route = self._route_name(tool, frontend)
        if route == "mcp":
            return await self._run_mcp(tool, parameters)
        if route == "frontend":
            return await frontend.execute(tool, parameters)
        if tool.environment == ExecutionEnvironment.BROWSER:
            logger.debug("No front-end attached, running browser tool %s in a worker", tool.name)
        return await self._run_in_worker(tool, parameters)

    async def _run_in_worker(self, tool: ToolDefinition, parameters: dict) -> Any:
        request = {
            "type": "execute",
            "code": tool.code,
            "parameters": parameters,
            "timeout": tool.timeout_ms,
        }
        proc = await asyncio.create_subprocess_exec(
            self.python,
            self.worker_path,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(json.dumps(request, default=str).encode("utf-8")),
                timeout=tool.timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError:
            await self._kill(proc)
            raise ToolExecutionError(f"Tool execution timed out after {tool.timeout_ms}ms")

        if stderr:
            logger.debug("Worker stderr for %s: %s", tool.name, stderr.decode("utf-8", errors="replace").strip())

        text = stdout.decode("utf-8", errors="replace").strip()
        if not text:
            raise ToolExecutionError(f"Worker process exited with code {proc.returncode}")
        try:
            response = json.loads(text)
        except json.JSONDecodeError:
            raise ToolExecutionError(f"Invalid worker response: {text[:200]}")
        if not isinstance(response, dict):
            raise ToolExecutionError(f"Invalid worker response: {text[:200]}")
        if not response.get("success"):
            raise ToolExecutionError(response.get("error") or "Tool execution failed")
        return response.get("result")

    async def _kill(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        proc.kill()
        try:
            await asyncio.wait_for(proc.wait(), timeout=C.WORKER_KILL_GRACE_SEC)
        except asyncio.TimeoutError:
            logger.warning("Worker process %s did not exit after kill", proc.pid)

    async def _run_mcp(self, tool: ToolDefinition, parameters: dict) -> Any:
        if self.mcp_client is None:
            raise ToolExecutionError(f'No MCP client available for tool "{tool.name}"')
        try:
            response = await asyncio.wait_for(
                self.mcp_client.call_tool(tool.mcp_server_name, tool.mcp_tool_name, parameters),
                timeout=tool.timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError:
            raise ToolExecutionError(f"Tool execution timed out after {tool.timeout_ms}ms")
        if not response.get("ok"):
            raise ToolExecutionError(response.get("error") or "MCP tool call failed")
        return response.get("result")


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
