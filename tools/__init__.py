"""Tool validation, routing and execution contexts."""
from .errors import FrontendBusyError, ToolExecutionError
from .frontend import FrontendBridge, execute_tool_in_frontend
from .router import ToolRouter
from .tracking import ToolCallTable
from .validation import validate_parameters

__all__ = [
    "FrontendBridge",
    "FrontendBusyError",
    "ToolCallTable",
    "ToolExecutionError",
    "ToolRouter",
    "execute_tool_in_frontend",
    "validate_parameters",
]
