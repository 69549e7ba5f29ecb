"""System prompt pieces for tool use with inline-style providers."""
import json

from models import ToolDefinition

TOOL_PROMPT_HEADER = """You can call tools. To call a tool, reply with a JSON object of the form
{"toolname": "<tool name>", "parameters": {<arguments>}}
Emit one object per call and nothing after the last object. The tool results
will be sent back to you in the next message.

Available tools:"""


def build_tool_prompt(tools: list[ToolDefinition]) -> str:
    """Describe enabled tools and the inline call format; empty if none."""
    enabled = [t for t in tools if t.enabled]
    if not enabled:
        return ""
    lines = [TOOL_PROMPT_HEADER]
    for tool in enabled:
        lines.append(f"- {tool.name}: {tool.description}".rstrip())
        lines.append(f"  parameters: {json.dumps(tool.parameters, ensure_ascii=False)}")
    return "\n".join(lines)


def build_system_prompt(agent_prompt: str, tools: list[ToolDefinition], inline_tools: bool) -> str:
    parts = [agent_prompt.strip()] if agent_prompt and agent_prompt.strip() else []
    if inline_tools:
        tool_prompt = build_tool_prompt(tools)
        if tool_prompt:
            parts.append(tool_prompt)
    return "\n\n".join(parts)
