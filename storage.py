"""
Persistence layer: provider/model/tool configuration, MCP server configs,
agent history, and attached-file context.
"""
import json
import logging
import os
import re
from datetime import datetime
from typing import Optional

from models import (
    AgentContext,
    ConversationMessage,
    ExecutionEnvironment,
    MessageRole,
    ModelConfig,
    ProjectContext,
    ProviderConfig,
    ProviderType,
    ToolDefinition,
    ToolType,
)
import constants as C

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when a provider, model config or tool lookup cannot be satisfied."""
    pass


def _get_config_dir() -> str:
    """Get config directory path."""
    config_dir = os.environ.get(C.CONFIG_DIR_ENV) or os.path.join(
        os.path.expanduser("~"), ".config", C.CONFIG_DIR_NAME
    )
    os.makedirs(config_dir, exist_ok=True)
    return config_dir


def _read_json(path: str) -> Optional[dict]:
    """Read a JSON object from disk; None when missing or invalid."""
    if not os.path.exists(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else None
    except (json.JSONDecodeError, IOError) as e:
        logger.warning("Could not load %s: %s", path, e)
        return None


def _write_json(path: str, data: dict) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def _provider_from_dict(data: dict) -> ProviderConfig:
    return ProviderConfig(
        id=data["id"],
        type=ProviderType(data.get("type", "openai")),
        name=data.get("name", ""),
        api_key=data.get("apiKey") or data.get("api_key") or "",
        base_url=data.get("baseURL") or data.get("base_url"),
    )


def _model_config_from_dict(data: dict) -> ModelConfig:
    return ModelConfig(
        id=data["id"],
        model=data["model"],
        type=ProviderType(data.get("type", "openai")),
        name=data.get("name", ""),
        temperature=data.get("temperature"),
        max_tokens=data.get("maxTokens", data.get("max_tokens")),
        top_p=data.get("topP", data.get("top_p")),
        extra=data.get("extra") if isinstance(data.get("extra"), dict) else {},
    )


def _tool_from_dict(data: dict) -> ToolDefinition:
    params = data.get("parameters")
    if not isinstance(params, dict):
        params = {"type": "object", "properties": {}}
    return ToolDefinition(
        name=str(data["name"]),
        description=str(data.get("description", "")),
        parameters=params,
        code=str(data.get("code", "")),
        environment=ExecutionEnvironment(data.get("environment") or "node"),
        timeout_ms=int(data.get("timeout") or data.get("timeout_ms") or C.TOOL_TIMEOUT_MS),
        enabled=bool(data.get("enabled", True)),
        tool_type=ToolType(data.get("toolType") or "custom"),
        mcp_server_name=data.get("mcpServerName"),
        mcp_tool_name=data.get("mcpToolName"),
    )


class ConfigStore:
    """Read-only access to providers.json, models.json, tools.json and mcp.json."""

    def __init__(self, config_dir: Optional[str] = None):
        self.config_dir = config_dir or _get_config_dir()

    def _path(self, name: str) -> str:
        return os.path.join(self.config_dir, name)

    def load_providers(self) -> list[ProviderConfig]:
        data = _read_json(self._path("providers.json")) or {}
        providers = []
        for item in data.get("providers", []):
            try:
                providers.append(_provider_from_dict(item))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Skipping invalid provider entry %r: %s", item, e)
        return providers

    def get_provider(self, provider_id: str) -> ProviderConfig:
        for provider in self.load_providers():
            if provider.id == provider_id:
                return provider
        raise ConfigurationError(f'Provider "{provider_id}" not found')

    def load_model_configs(self) -> list[ModelConfig]:
        data = _read_json(self._path("models.json")) or {}
        configs = []
        for item in data.get("modelConfigs", data.get("models", [])):
            try:
                configs.append(_model_config_from_dict(item))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Skipping invalid model config %r: %s", item, e)
        return configs

    def get_model_config(self, model_id: str) -> ModelConfig:
        for config in self.load_model_configs():
            if config.id == model_id:
                return config
        raise ConfigurationError(f'ModelConfig "{model_id}" not found')

    def load_tools(self) -> list[ToolDefinition]:
        """Load custom tools from tools.json.

        Format: {"tools": [{"name": ..., "code": ..., "parameters": {...}, ...}]}
        """
        data = _read_json(self._path("tools.json")) or {}
        tools = []
        for item in data.get("tools", []):
            try:
                tools.append(_tool_from_dict(item))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Skipping invalid tool entry: %s", e)
        return tools

    def load_mcp_servers(self) -> list[dict]:
        """Load MCP server configs ({"mcpServers": [{name, transport, ...}]})."""
        data = _read_json(self._path("mcp.json")) or {}
        servers = data.get("mcpServers")
        # Also accept the keyed-object layout used by other MCP clients
        if isinstance(servers, dict):
            servers = [dict(cfg, name=name) for name, cfg in servers.items() if isinstance(cfg, dict)]
        if not isinstance(servers, list):
            return []
        return [s for s in servers if isinstance(s, dict) and s.get("name")]


def _message_to_dict(msg: ConversationMessage) -> dict:
    """Serialize a ConversationMessage to a JSON-serializable dict."""
    data = {
        "role": msg.role.value,
        "content": msg.content,
        "timestamp": msg.timestamp.isoformat(),
    }
    if msg.tool_call_id:
        data["tool_call_id"] = msg.tool_call_id
    if msg.tool_calls:
        data["tool_calls"] = msg.tool_calls
    return data


def _message_from_dict(data: dict) -> ConversationMessage:
    """Deserialize a ConversationMessage from a dict."""
    timestamp = data.get("timestamp")
    return ConversationMessage(
        role=MessageRole(data["role"]),
        content=data.get("content") or "",
        tool_call_id=data.get("tool_call_id"),
        tool_calls=data.get("tool_calls") if isinstance(data.get("tool_calls"), list) else None,
        timestamp=datetime.fromisoformat(timestamp) if isinstance(timestamp, str) else datetime.now(),
    )


def _safe_name(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_.-]", "_", name.strip()) or "agent"


class HistoryStore:
    """Durable agent history, one JSON file per agent inside the project."""

    def __init__(self, dirname: str = ".agentdesk"):
        self.dirname = dirname

    def _history_path(self, project: ProjectContext, agent_name: str) -> str:
        return os.path.join(project.path, self.dirname, "agents", f"{_safe_name(agent_name)}.json")

    def load_history(self, project: ProjectContext, agent_name: str) -> list[ConversationMessage]:
        data = _read_json(self._history_path(project, agent_name)) or {}
        history = []
        for item in data.get("history", []):
            try:
                history.append(_message_from_dict(item))
            except (KeyError, ValueError) as e:
                logger.warning("Skipping invalid history entry: %s", e)
        return history

    def save_history(self, project: ProjectContext, agent: AgentContext) -> None:
        """Write the agent's full history to disk."""
        path = self._history_path(project, agent.name)
        data = {
            "name": agent.name,
            "history": [_message_to_dict(m) for m in agent.history],
            "version": 1,
        }
        _write_json(path, data)
        logger.debug("Saved %d history messages for agent %s", len(agent.history), agent.name)

    def clear_history(self, project: ProjectContext, agent: AgentContext) -> None:
        agent.history = []
        self.save_history(project, agent)


def read_attached_files(file_paths: list[str]) -> list[ConversationMessage]:
    """Read attached files into system-role context messages.

    Unreadable files are logged and skipped.
    """
    messages = []
    for file_path in file_paths or []:
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                content = f.read()
        except (IOError, UnicodeDecodeError) as e:
            logger.error("Failed to read file %s: %s", file_path, e)
            continue
        messages.append(
            ConversationMessage(
                role=MessageRole.SYSTEM,
                content=f"[File: {os.path.basename(file_path)}]\n{content}",
            )
        )
    return messages
