"""Per-turn table of tool calls keyed by call identity."""
from models import ToolCallDirective, ToolCallResult


class ToolCallTable:
    """Owned by one turn and handed to the router; never shared between turns.

    Identical concurrent calls (same tool name and canonical parameters) map
    to the same entry.
    """

    def __init__(self):
        self._calls: dict[str, ToolCallResult] = {}

    def begin(self, directive: ToolCallDirective) -> ToolCallResult:
        """Register a call as executing and return its result record.

        An identical call that is still executing is returned as is.
        """
        key = directive.identity_key
        existing = self._calls.get(key)
        if existing is not None and not existing.is_terminal:
            return existing
        call = ToolCallResult(
            tool_name=directive.tool_name,
            parameters=directive.parameters,
            call_id=directive.call_id,
        )
        self._calls[key] = call
        return call
