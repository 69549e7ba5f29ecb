"""MCP server client: tool discovery and tool calls over stdio or HTTP."""
from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Optional

import aiohttp

from models import ExecutionEnvironment, ToolDefinition, ToolType
import constants as C

logger = logging.getLogger(__name__)


class MCPError(Exception):
    """JSON-RPC level failure talking to an MCP server."""
    pass


def mcp_tool_name(server_name: str, tool_name: str) -> str:
    """Name under which a server's tool is exposed to the model."""
    name = f"{server_name}{C.MCP_NAME_SEPARATOR}{tool_name}"
    cleaned = re.sub(r"[^a-zA-Z0-9_-]", "_", name)
    return cleaned[:64] if cleaned else "tool"


class MCPClient:
    """Talks to the MCP servers from mcp.json.

    Every operation opens a fresh connection (HTTP session or stdio process),
    runs `initialize`, then the requested method.
    """

    def __init__(self, servers: Optional[list[dict]] = None, timeout_sec: float = 12):
        self.servers = {s["name"]: s for s in servers or [] if isinstance(s, dict) and s.get("name")}
        self.timeout_sec = timeout_sec

    async def discover_tools(self) -> list[ToolDefinition]:
        """List tools from every enabled server; failing servers are skipped."""
        names = [n for n, cfg in self.servers.items() if cfg.get("enabled", True)]
        if not names:
            return []

        results = await asyncio.gather(*(self._discover_single(n) for n in names), return_exceptions=True)
        tools: list[ToolDefinition] = []
        seen = set()
        for server_name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.warning("MCP discovery failed for %s: %s", server_name, result)
                continue
            for tool in result:
                if tool.name in seen:
                    continue
                seen.add(tool.name)
                tools.append(tool)
        return tools

    async def _discover_single(self, server_name: str) -> list[ToolDefinition]:
        cfg = self.servers[server_name]
        logger.info("Discovering tools from MCP server %s", server_name)
        response = await self._request(cfg, "tools/list", {})
        result = response.get("result") if isinstance(response, dict) else None
        raw_tools = result.get("tools") if isinstance(result, dict) else None
        if not isinstance(raw_tools, list):
            return []

        tools = [self._to_definition(server_name, t) for t in raw_tools if isinstance(t, dict)]
        logger.info(
            "Found %d tools on %s: %s",
            len(tools),
            server_name,
            ", ".join(t.name for t in tools),
        )
        return tools

    def _to_definition(self, server_name: str, tool: dict) -> ToolDefinition:
        raw_name = str(tool.get("name") or "tool").strip()
        description = str(tool.get("description") or f"MCP tool '{raw_name}' from {server_name}").strip()

        params = tool.get("inputSchema")
        if not isinstance(params, dict):
            params = tool.get("input_schema")
        if not isinstance(params, dict):
            params = {"type": "object", "properties": {}, "additionalProperties": True}
        if params.get("type") != "object":
            params = {
                "type": "object",
                "properties": {"input": params},
                "required": ["input"],
            }

        return ToolDefinition(
            name=mcp_tool_name(server_name, raw_name),
            description=description,
            parameters=params,
            environment=ExecutionEnvironment.NODE,
            timeout_ms=C.MCP_TOOL_TIMEOUT_MS,
            tool_type=ToolType.MCP,
            mcp_server_name=server_name,
            mcp_tool_name=raw_name,
        )

    async def call_tool(self, server_name: str, tool_name: str, arguments: dict) -> dict:
        """Run `tools/call`; returns {"ok": True, "result": ...} or {"ok": False, "error": ...}."""
        cfg = self.servers.get(server_name)
        if cfg is None:
            return {"ok": False, "error": f'MCP server "{server_name}" not found'}
        try:
            response = await self._request(cfg, "tools/call", {"name": tool_name, "arguments": arguments or {}})
        except (MCPError, aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            return {"ok": False, "error": f"MCP call failed: {e}"}

        if isinstance(response.get("error"), dict):
            return {"ok": False, "error": response["error"].get("message") or json.dumps(response["error"])}
        result = response.get("result")
        if not isinstance(result, dict):
            return {"ok": False, "error": f"Invalid tools/call response: {response}"}
        if result.get("isError"):
            return {"ok": False, "error": _content_text(result) or "MCP tool reported an error"}
        return {"ok": True, "result": result}

    async def _request(self, cfg: dict, method: str, params: dict) -> dict:
        url = cfg.get("url")
        command = cfg.get("command")
        if isinstance(url, str) and url.strip():
            return await self._request_http(url.strip(), cfg, method, params)
        if isinstance(command, str) and command.strip():
            return await self._request_stdio(command.strip(), cfg, method, params)
        raise MCPError(f"No supported transport for {cfg.get('name')}")

    def _initialize_params(self) -> dict:
        return {
            "protocolVersion": C.MCP_PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": C.MCP_CLIENT_INFO,
        }

    async def _request_http(self, url: str, cfg: dict, method: str, params: dict) -> dict:
        headers = dict(cfg.get("headers")) if isinstance(cfg.get("headers"), dict) else {}
        headers.setdefault("Accept", "application/json, text/event-stream")
        timeout = aiohttp.ClientTimeout(total=self.timeout_sec)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            # Some servers do not require initialize; keep going if it fails
            try:
                _, session_id = await self._post_jsonrpc(session, url, 1, "initialize", self._initialize_params(), headers)
            except (MCPError, aiohttp.ClientError) as e:
                logger.debug("MCP initialize failed for %s: %s", url, e)
                session_id = None
            if session_id:
                headers["Mcp-Session-Id"] = session_id
            response, _ = await self._post_jsonrpc(session, url, 2, method, params, headers)
            return response

    async def _post_jsonrpc(
        self,
        session: aiohttp.ClientSession,
        url: str,
        req_id: int,
        method: str,
        params: dict,
        headers: dict,
    ) -> tuple[dict, Optional[str]]:
        payload = {"jsonrpc": "2.0", "id": req_id, "method": method, "params": params}
        async with session.post(url, json=payload, headers=headers) as resp:
            body = await resp.text()
            if resp.status >= 400:
                raise MCPError(f"HTTP {resp.status}: {body[:200]}")
            if "text/event-stream" in resp.headers.get("Content-Type", ""):
                data = _first_sse_response(body, req_id)
            else:
                try:
                    data = json.loads(body) if body.strip() else {}
                except json.JSONDecodeError:
                    raise MCPError(f"Invalid JSON-RPC response: {body[:200]}")
            return (data if isinstance(data, dict) else {}), resp.headers.get("Mcp-Session-Id")

    async def _request_stdio(self, command: str, cfg: dict, method: str, params: dict) -> dict:
        args = cfg.get("args") if isinstance(cfg.get("args"), list) else []
        env = cfg.get("env") if isinstance(cfg.get("env"), dict) else None

        proc = await asyncio.create_subprocess_exec(
            command,
            *[str(a) for a in args],
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
            env=env,
        )
        try:
            try:
                await self._stdio_jsonrpc(proc, 1, "initialize", self._initialize_params())
                await self._stdio_notify(proc, "notifications/initialized")
            except (MCPError, asyncio.TimeoutError) as e:
                logger.debug("MCP stdio initialize failed for %s: %s", command, e)
            return await self._stdio_jsonrpc(proc, 2, method, params)
        finally:
            if proc.returncode is None:
                proc.terminate()
                try:
                    await asyncio.wait_for(proc.wait(), timeout=1.0)
                except asyncio.TimeoutError:
                    proc.kill()

    async def _stdio_notify(self, proc: asyncio.subprocess.Process, method: str) -> None:
        message = {"jsonrpc": "2.0", "method": method}
        proc.stdin.write((json.dumps(message) + "\n").encode("utf-8"))
        await proc.stdin.drain()

    async def _stdio_jsonrpc(self, proc: asyncio.subprocess.Process, req_id: int, method: str, params: dict) -> dict:
        if proc.stdin is None or proc.stdout is None:
            raise MCPError("stdio pipes unavailable")

        request = {"jsonrpc": "2.0", "id": req_id, "method": method, "params": params}
        proc.stdin.write((json.dumps(request) + "\n").encode("utf-8"))
        await proc.stdin.drain()

        while True:
            line = await asyncio.wait_for(proc.stdout.readline(), timeout=self.timeout_sec)
            if not line:
                break
            text = line.decode("utf-8", errors="replace").strip()
            if not text:
                continue
            try:
                data = json.loads(text)
            except json.JSONDecodeError:
                continue
            if isinstance(data, dict) and data.get("id") == req_id:
                return data
        raise MCPError(f"No response for MCP method {method}")


def _first_sse_response(body: str, req_id: int) -> dict:
    for line in body.splitlines():
        line = line.strip()
        if not line.startswith("data:"):
            continue
        try:
            data = json.loads(line[5:].strip())
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict) and data.get("id") == req_id:
            return data
    raise MCPError("No JSON-RPC response in event stream")


def _content_text(result: dict) -> str:
    parts = result.get("content")
    if not isinstance(parts, list):
        return ""
    return "\n".join(str(p.get("text")) for p in parts if isinstance(p, dict) and p.get("type") == "text")
