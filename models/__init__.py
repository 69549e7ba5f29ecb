"""
Data models for conversations, tool calls and configuration.
"""
from .message import (
    ConversationMessage,
    DisplayMessage,
    MessageRole,
    ToolCallDirective,
    ToolCallResult,
    ToolCallStatus,
    canonical_json,
    tool_call_key,
    trim_history,
)
from .config import (
    AgentContext,
    ExecutionEnvironment,
    ModelConfig,
    ProjectContext,
    ProviderConfig,
    ProviderType,
    ToolDefinition,
    ToolType,
)

__all__ = [
    "AgentContext",
    "ConversationMessage",
    "DisplayMessage",
    "ExecutionEnvironment",
    "MessageRole",
    "ModelConfig",
    "ProjectContext",
    "ProviderConfig",
    "ProviderType",
    "ToolCallDirective",
    "ToolCallResult",
    "ToolCallStatus",
    "ToolDefinition",
    "ToolType",
    "canonical_json",
    "tool_call_key",
    "trim_history",
]
