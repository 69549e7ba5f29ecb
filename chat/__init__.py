"""Turn orchestration and the consumer-side display model."""
from .directives import (
    canonical_parameters,
    dedupe_directives,
    merge_structured_calls,
    parse_inline_directives,
)
from .history import history_to_display
from .orchestrator import Orchestrator, StreamSession, TurnCallbacks, TurnResult
from .prompts import build_system_prompt, build_tool_prompt
from .reconstruction import EventKind, MessageReconstructor, ReconstructionEvent, replay
from .sniffer import MarkerSniffer

__all__ = [
    "EventKind",
    "MarkerSniffer",
    "MessageReconstructor",
    "Orchestrator",
    "ReconstructionEvent",
    "StreamSession",
    "TurnCallbacks",
    "TurnResult",
    "build_system_prompt",
    "build_tool_prompt",
    "canonical_parameters",
    "dedupe_directives",
    "history_to_display",
    "merge_structured_calls",
    "parse_inline_directives",
    "replay",
]
