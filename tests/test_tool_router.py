import sys

import pytest

from models import (
    ExecutionEnvironment,
    ToolCallDirective,
    ToolCallStatus,
    ToolDefinition,
    ToolType,
)
from tools import ToolCallTable, ToolRouter

ADD_SCHEMA = {
    "type": "object",
    "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
    "required": ["a", "b"],
}

ADD_CODE = "def tool(params):\n    return params['a'] + params['b']\n"


def _add_tool(**overrides):
    fields = dict(name="add", description="Add two numbers", parameters=ADD_SCHEMA, code=ADD_CODE)
    fields.update(overrides)
    return ToolDefinition(**fields)


class CountingRouter(ToolRouter):
    """Router whose execution step is replaced by a counter."""

    def __init__(self):
        super().__init__()
        self.dispatched = []

    async def _dispatch(self, tool, parameters, frontend):
        self.dispatched.append((tool.name, parameters))
        return "ran"


@pytest.mark.slow
@pytest.mark.asyncio
async def test_add_runs_in_worker_process():
    router = ToolRouter()
    result = await router.execute(ToolCallDirective("add", {"a": 1, "b": 2}), _add_tool())
    assert result.status == ToolCallStatus.COMPLETED
    assert result.result == 3
    assert result.error is None
    assert result.execution_time_ms is not None


@pytest.mark.slow
@pytest.mark.asyncio
async def test_async_tool_and_run_entrypoint():
    code = (
        "import asyncio\n"
        "async def run(params):\n"
        "    await asyncio.sleep(0)\n"
        "    print('noise goes to stderr')\n"
        "    return {'echo': params['msg']}\n"
    )
    tool = ToolDefinition(name="echo", code=code, parameters={"type": "object", "properties": {}})
    result = await ToolRouter().execute(ToolCallDirective("echo", {"msg": "hi"}), tool)
    assert result.status == ToolCallStatus.COMPLETED
    assert result.result == {"echo": "hi"}


@pytest.mark.slow
@pytest.mark.asyncio
async def test_worker_timeout_kills_process():
    code = "import time\ndef tool(params):\n    time.sleep(10)\n"
    tool = ToolDefinition(name="slow", code=code, timeout_ms=300)
    result = await ToolRouter().execute(ToolCallDirective("slow", {}), tool)
    assert result.status == ToolCallStatus.FAILED
    assert result.error == "Tool execution timed out after 300ms"


@pytest.mark.slow
@pytest.mark.asyncio
async def test_tool_exception_becomes_failed_result():
    code = "def tool(params):\n    raise ValueError('bad input')\n"
    result = await ToolRouter().execute(ToolCallDirective("boom", {}), ToolDefinition(name="boom", code=code))
    assert result.status == ToolCallStatus.FAILED
    assert result.error == "bad input"


@pytest.mark.slow
@pytest.mark.asyncio
async def test_missing_entrypoint():
    result = await ToolRouter().execute(ToolCallDirective("x", {}), ToolDefinition(name="x", code="y = 1\n"))
    assert result.status == ToolCallStatus.FAILED
    assert "tool" in result.error and "run" in result.error


@pytest.mark.slow
@pytest.mark.asyncio
async def test_worker_exit_without_response(tmp_path):
    script = tmp_path / "dead_worker.py"
    script.write_text("import sys\nsys.exit(3)\n")
    router = ToolRouter(python=sys.executable, worker_path=str(script))
    result = await router.execute(ToolCallDirective("x", {}), ToolDefinition(name="x", code=ADD_CODE))
    assert result.status == ToolCallStatus.FAILED
    assert result.error == "Worker process exited with code 3"


@pytest.mark.asyncio
async def test_type_mismatch_fails_with_field_name():
    router = CountingRouter()
    result = await router.execute(ToolCallDirective("add", {"a": "x", "b": 2}), _add_tool())
    assert result.status == ToolCallStatus.FAILED
    assert result.error == 'Property "a" must be number, got string'
    assert router.dispatched == []


@pytest.mark.asyncio
async def test_missing_required_never_executes():
    router = CountingRouter()
    result = await router.execute(ToolCallDirective("add", {"a": 1}), _add_tool())
    assert result.status == ToolCallStatus.FAILED
    assert result.error == "Missing required property: b"
    assert result.execution_time_ms == 0
    assert router.dispatched == []


@pytest.mark.asyncio
async def test_unknown_and_disabled_tools():
    router = CountingRouter()
    missing = await router.execute(ToolCallDirective("nope", {}), None)
    assert missing.error == 'Tool "nope" not found'
    disabled = await router.execute(ToolCallDirective("add", {"a": 1, "b": 2}), _add_tool(enabled=False))
    assert disabled.error == 'Tool "add" is disabled'
    assert router.dispatched == []


@pytest.mark.asyncio
async def test_valid_call_reaches_execution_and_uses_table():
    router = CountingRouter()
    table = ToolCallTable()
    directive = ToolCallDirective("add", {"a": 1, "b": 2})
    started = table.begin(directive)
    assert table.begin(ToolCallDirective("add", {"b": 2, "a": 1})) is started

    result = await router.execute(directive, _add_tool(), table=table)
    assert result is started
    assert result.status == ToolCallStatus.COMPLETED
    assert result.result == "ran"
    # A finished call is not reused by a later identical one
    assert table.begin(directive) is not result


class FakeFrontend:
    def __init__(self):
        self.calls = []

    async def execute(self, tool, parameters):
        self.calls.append(tool.name)
        return {"title": "Example"}


@pytest.mark.asyncio
async def test_browser_tool_goes_to_frontend():
    frontend = FakeFrontend()
    tool = ToolDefinition(name="page_title", environment=ExecutionEnvironment.BROWSER, code="...")
    result = await ToolRouter().execute(ToolCallDirective("page_title", {}), tool, frontend=frontend)
    assert result.status == ToolCallStatus.COMPLETED
    assert result.result == {"title": "Example"}
    assert frontend.calls == ["page_title"]


@pytest.mark.slow
@pytest.mark.asyncio
async def test_browser_tool_without_frontend_uses_worker():
    tool = _add_tool(environment=ExecutionEnvironment.BROWSER)
    result = await ToolRouter().execute(ToolCallDirective("add", {"a": 2, "b": 2}), tool)
    assert result.status == ToolCallStatus.COMPLETED
    assert result.result == 4


class FakeMCPClient:
    def __init__(self, response):
        self.response = response
        self.calls = []

    async def call_tool(self, server_name, tool_name, arguments):
        self.calls.append((server_name, tool_name, arguments))
        return self.response


@pytest.mark.asyncio
async def test_mcp_tool_routed_to_client():
    client = FakeMCPClient({"ok": True, "result": {"content": [{"type": "text", "text": "hi"}]}})
    tool = ToolDefinition(
        name="search__query",
        tool_type=ToolType.MCP,
        mcp_server_name="search",
        mcp_tool_name="query",
    )
    result = await ToolRouter(mcp_client=client).execute(ToolCallDirective("search__query", {"q": "x"}), tool)
    assert result.status == ToolCallStatus.COMPLETED
    assert client.calls == [("search", "query", {"q": "x"})]


@pytest.mark.asyncio
async def test_mcp_error_and_missing_client():
    tool = ToolDefinition(name="s__t", tool_type=ToolType.MCP, mcp_server_name="s", mcp_tool_name="t")
    failed = await ToolRouter(mcp_client=FakeMCPClient({"ok": False, "error": "down"})).execute(
        ToolCallDirective("s__t", {}), tool
    )
    assert failed.status == ToolCallStatus.FAILED
    assert failed.error == "down"

    no_client = await ToolRouter().execute(ToolCallDirective("s__t", {}), tool)
    assert no_client.status == ToolCallStatus.FAILED
