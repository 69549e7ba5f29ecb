"""
Front-end execution bridge for browser-environment tools.

The host hands the bridge a `dispatch` callable that delivers a request to
the UI's execution context; the UI answers by calling `deliver_result` with
the same request id. There is one in-flight slot per call identity, not a
queue.
"""
import asyncio
import inspect
import logging
import time
from typing import Any, Callable

from models import ToolDefinition, tool_call_key
from .errors import FrontendBusyError, ToolExecutionError
from .worker import load_entrypoint

logger = logging.getLogger(__name__)


class FrontendBridge:
    def __init__(self, dispatch: Callable[[dict], Any]):
        self._dispatch = dispatch
        self._pending: dict[str, asyncio.Future] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def execute(self, tool: ToolDefinition, parameters: dict) -> Any:
        """Forward one call and wait for its correlated result.

        On timeout we stop waiting; the front-end may still finish the work.
        """
        request_id = tool_call_key(tool.name, parameters)
        if request_id in self._pending:
            raise FrontendBusyError(f"Tool call {request_id} is already in flight")

        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        request = {
            "requestId": request_id,
            "toolName": tool.name,
            "code": tool.code,
            "parameters": parameters,
            "timeout": tool.timeout_ms,
        }
        try:
            sent = self._dispatch(request)
            if inspect.isawaitable(sent):
                await sent
            response = await asyncio.wait_for(future, timeout=tool.timeout_ms / 1000.0)
        except asyncio.TimeoutError:
            raise ToolExecutionError(f"Tool execution timed out after {tool.timeout_ms}ms")
        finally:
            self._pending.pop(request_id, None)

        if not response.get("success"):
            raise ToolExecutionError(response.get("error") or "Browser tool execution failed")
        return response.get("result")

    def deliver_result(self, request_id: str, response: dict) -> bool:
        """Resolve a waiting call. Must run on the event loop thread.

        Results for unknown or already-abandoned requests are dropped.
        """
        future = self._pending.get(request_id)
        if future is None or future.done():
            logger.debug("Dropping result for unknown request %s", request_id)
            return False
        future.set_result(response if isinstance(response, dict) else {"success": False, "error": "Invalid response"})
        return True


async def execute_tool_in_frontend(code: str, parameters: dict, timeout_ms: int) -> dict:
    """UI-side runner: execute tool code in this process and build a response.

    Synchronous tools run on a thread so the loop stays responsive; a thread
    that outlives the timeout is abandoned, not stopped.
    """
    start = time.monotonic()
    try:
        fn = load_entrypoint(code)
        if inspect.iscoroutinefunction(fn):
            result = await asyncio.wait_for(fn(parameters), timeout=timeout_ms / 1000.0)
        else:
            result = await asyncio.wait_for(asyncio.to_thread(fn, parameters), timeout=timeout_ms / 1000.0)
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(result, timeout=timeout_ms / 1000.0)
    except asyncio.TimeoutError:
        return {
            "success": False,
            "error": f"Tool execution timed out after {timeout_ms}ms",
            "executionTime": int((time.monotonic() - start) * 1000),
        }
    except Exception as e:
        return {
            "success": False,
            "error": str(e) or type(e).__name__,
            "executionTime": int((time.monotonic() - start) * 1000),
        }
    return {
        "success": True,
        "result": result,
        "executionTime": int((time.monotonic() - start) * 1000),
    }
