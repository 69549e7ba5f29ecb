"""
Defaults and protocol constants for the AgentDesk chat core.
"""

# Config directory (under ~/.config)
CONFIG_DIR_NAME = "AgentDesk"
CONFIG_DIR_ENV = "AGENTDESK_CONFIG_DIR"

# Provider endpoints
DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "glm": "https://open.bigmodel.cn/api/paas/v4",
    "anthropic": "https://api.anthropic.com",
}
API_CHAT_COMPLETIONS = "/chat/completions"
API_ANTHROPIC_MESSAGES = "/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
ANTHROPIC_DEFAULT_MAX_TOKENS = 4096

# SSE framing
SSE_DATA_PREFIX = "data: "
SSE_DONE = "data: [DONE]"

# Timeouts (milliseconds)
STREAM_TIMEOUT_MS = 60000
TOOL_TIMEOUT_MS = 30000
MCP_TOOL_TIMEOUT_MS = 60000
WORKER_KILL_GRACE_SEC = 1.0

# Tool-call loop
MAX_ITERATIONS = 10
TOOL_CALL_KEY = "toolname"
TOOL_CALL_SENTINEL = f'"{TOOL_CALL_KEY}"'
TOOL_PARAMS_KEY = "parameters"
MAX_ITERATIONS_NOTE = (
    "[Note: Maximum tool call rounds reached. "
    "Some tool calls may not have been executed.]"
)

# Context window - models have limits (e.g. 4K, 8K, 32K tokens)
DEFAULT_CONTEXT_LIMIT = 32768
CHARS_PER_TOKEN_EST = 4  # Rough estimate for token counting

# MCP
MCP_PROTOCOL_VERSION = "2024-11-05"
MCP_CLIENT_INFO = {"name": "AgentDesk", "version": "1.0"}
MCP_NAME_SEPARATOR = "__"
