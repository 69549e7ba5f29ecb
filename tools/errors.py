"""Tool execution exceptions."""


class ToolExecutionError(Exception):
    """A tool ran (or tried to) and did not produce a result."""
    pass


class FrontendBusyError(RuntimeError):
    """A call with the same identity is already waiting on the front-end."""
    pass
