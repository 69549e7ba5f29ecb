#!/usr/bin/env python3
"""
Tool worker process.

Runs one tool in isolation from the host. The host writes a single JSON
request to stdin:

    {"type": "execute", "code": "...", "parameters": {...}, "timeout": 30000}

and reads a single JSON response from stdout:

    {"success": true, "result": ..., "executionTime": 12}
    {"success": false, "error": "...", "executionTime": 3}

The tool source must define a function named `tool` or `run` taking the
parameters dict; it may be a coroutine function. Anything the tool prints
goes to stderr so stdout carries only the response. The host enforces the
timeout by killing this process.
"""
import asyncio
import inspect
import json
import sys
import time
from contextlib import redirect_stdout


def load_entrypoint(code: str):
    """Execute tool source in a fresh namespace and return its entry function."""
    namespace = {"__name__": "__tool__"}
    exec(compile(code, "<tool>", "exec"), namespace)
    fn = namespace.get("tool") or namespace.get("run")
    if not callable(fn):
        raise ValueError('Tool code must define a function named "tool" or "run"')
    return fn


async def _await(awaitable):
    return await awaitable


def execute(request: dict) -> dict:
    start = time.monotonic()
    try:
        fn = load_entrypoint(str(request.get("code") or ""))
        with redirect_stdout(sys.stderr):
            result = fn(request.get("parameters") or {})
            if inspect.isawaitable(result):
                result = asyncio.run(_await(result))
        return {
            "success": True,
            "result": result,
            "executionTime": int((time.monotonic() - start) * 1000),
        }
    except Exception as e:
        return {
            "success": False,
            "error": str(e) or type(e).__name__,
            "executionTime": int((time.monotonic() - start) * 1000),
        }


def main() -> int:
    raw = sys.stdin.read()
    try:
        request = json.loads(raw)
    except json.JSONDecodeError as e:
        response = {"success": False, "error": f"Invalid request: {e}", "executionTime": 0}
    else:
        if not isinstance(request, dict) or request.get("type") != "execute":
            response = {"success": False, "error": "Unknown message type", "executionTime": 0}
        else:
            response = execute(request)
    sys.stdout.write(json.dumps(response, ensure_ascii=False, default=repr))
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
