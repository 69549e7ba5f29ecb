"""
Configuration records supplied by the config store.

These are read once per turn and treated as immutable while it runs.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import constants as C
from .message import ConversationMessage


class ProviderType(Enum):
    """Provider family discriminator."""
    OPENAI = "openai"
    AZURE = "azure"
    CUSTOM = "custom"
    GLM = "glm"
    ANTHROPIC = "anthropic"


class ExecutionEnvironment(Enum):
    """Where a custom tool's code runs.

    NODE runs it in an isolated worker process, BROWSER forwards it to the
    front-end execution context.
    """
    NODE = "node"
    BROWSER = "browser"


class ToolType(Enum):
    CUSTOM = "custom"
    MCP = "mcp"


@dataclass
class ProviderConfig:
    """An LLM provider account."""
    id: str
    type: ProviderType
    name: str = ""
    api_key: str = ""
    base_url: Optional[str] = None

    def resolved_base_url(self) -> Optional[str]:
        """Configured base URL, or the family default if one exists."""
        url = self.base_url or C.DEFAULT_BASE_URLS.get(self.type.value)
        return url.rstrip("/") if url else None


@dataclass
class ModelConfig:
    """Reusable model settings."""
    id: str
    model: str
    type: ProviderType
    name: str = ""
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to API request parameters."""
        d = {"model": self.model}
        if self.temperature is not None:
            d["temperature"] = self.temperature
        if self.max_tokens is not None:
            d["max_tokens"] = self.max_tokens
        if self.top_p is not None:
            d["top_p"] = self.top_p
        d.update(self.extra or {})
        return d


@dataclass
class ToolDefinition:
    """A user-defined or MCP-discovered tool."""
    name: str
    description: str = ""
    parameters: dict = field(default_factory=lambda: {"type": "object", "properties": {}})
    code: str = ""
    environment: ExecutionEnvironment = ExecutionEnvironment.NODE
    timeout_ms: int = C.TOOL_TIMEOUT_MS
    enabled: bool = True
    tool_type: ToolType = ToolType.CUSTOM
    mcp_server_name: Optional[str] = None
    mcp_tool_name: Optional[str] = None

    def to_function_schema(self) -> dict:
        """OpenAI-compatible function tool entry."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass
class AgentContext:
    """The agent a turn is sent to, including its durable history."""
    name: str
    provider_id: str
    model_id: str
    system_prompt: str = ""
    history: list[ConversationMessage] = field(default_factory=list)
    enable_tools: bool = True
    max_iterations: int = C.MAX_ITERATIONS
    context_limit: Optional[int] = C.DEFAULT_CONTEXT_LIMIT


@dataclass
class ProjectContext:
    """The project an agent belongs to."""
    path: str
    name: str = ""
