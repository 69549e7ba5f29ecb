import json

import pytest

from models import (
    AgentContext,
    ConversationMessage,
    ExecutionEnvironment,
    MessageRole,
    ProjectContext,
    ProviderType,
    ToolType,
)
from storage import ConfigStore, ConfigurationError, HistoryStore, read_attached_files


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")


@pytest.fixture
def config_dir(tmp_path):
    _write(tmp_path / "providers.json", {"providers": [
        {"id": "p1", "type": "glm", "name": "GLM", "apiKey": "k1"},
        {"id": "broken", "type": "not-a-provider"},
    ]})
    _write(tmp_path / "models.json", {"modelConfigs": [
        {"id": "m1", "model": "glm-4", "type": "glm", "maxTokens": 512, "topP": 0.9, "extra": {"thinking": {"type": "enabled"}}},
    ]})
    _write(tmp_path / "tools.json", {"tools": [
        {"name": "add", "code": "def tool(p): return 1", "timeout": 5000, "environment": "browser"},
        {"name": "search__query", "toolType": "mcp", "mcpServerName": "search", "mcpToolName": "query"},
    ]})
    _write(tmp_path / "mcp.json", {"mcpServers": {"search": {"url": "http://localhost:9000/mcp"}}})
    return tmp_path


def test_config_store_loads_and_resolves(config_dir):
    store = ConfigStore(str(config_dir))

    provider = store.get_provider("p1")
    assert provider.type == ProviderType.GLM
    assert provider.api_key == "k1"
    assert provider.resolved_base_url() == "https://open.bigmodel.cn/api/paas/v4"
    assert [p.id for p in store.load_providers()] == ["p1"]

    model = store.get_model_config("m1")
    assert model.max_tokens == 512
    assert model.top_p == 0.9
    assert model.to_dict()["thinking"] == {"type": "enabled"}

    add, mcp = store.load_tools()
    assert add.environment == ExecutionEnvironment.BROWSER
    assert add.timeout_ms == 5000
    assert mcp.tool_type == ToolType.MCP
    assert mcp.mcp_tool_name == "query"

    assert store.load_mcp_servers() == [{"url": "http://localhost:9000/mcp", "name": "search"}]


def test_missing_entries_raise_configuration_error(config_dir):
    store = ConfigStore(str(config_dir))
    with pytest.raises(ConfigurationError, match='Provider "nope" not found'):
        store.get_provider("nope")
    with pytest.raises(ConfigurationError, match='ModelConfig "nope" not found'):
        store.get_model_config("nope")


def test_missing_or_invalid_files_load_empty(tmp_path):
    (tmp_path / "tools.json").write_text("{not json", encoding="utf-8")
    store = ConfigStore(str(tmp_path))
    assert store.load_providers() == []
    assert store.load_tools() == []
    assert store.load_mcp_servers() == []


def test_history_round_trip(tmp_path):
    store = HistoryStore()
    project = ProjectContext(path=str(tmp_path))
    agent = AgentContext(name="my agent", provider_id="p", model_id="m")
    agent.history = [
        ConversationMessage(role=MessageRole.USER, content="hi"),
        ConversationMessage(
            role=MessageRole.ASSISTANT,
            content="",
            tool_calls=[{"id": "c1", "type": "function", "function": {"name": "x", "arguments": "{}"}}],
        ),
        ConversationMessage(role=MessageRole.TOOL, content="ok", tool_call_id="c1"),
    ]
    store.save_history(project, agent)

    loaded = store.load_history(project, "my agent")
    assert [(m.role, m.content, m.tool_call_id) for m in loaded] == [
        (MessageRole.USER, "hi", None),
        (MessageRole.ASSISTANT, "", None),
        (MessageRole.TOOL, "ok", "c1"),
    ]
    assert loaded[1].tool_calls[0]["id"] == "c1"

    store.clear_history(project, agent)
    assert store.load_history(project, "my agent") == []


def test_read_attached_files_skips_unreadable(tmp_path):
    good = tmp_path / "notes.txt"
    good.write_text("remember this", encoding="utf-8")
    messages = read_attached_files([str(good), str(tmp_path / "missing.txt")])
    assert len(messages) == 1
    assert messages[0].role == MessageRole.SYSTEM
    assert messages[0].content == "[File: notes.txt]\nremember this"
