"""
Tool-call marker sniffer.

Sits between the raw text fragments of one stream and the display callback.
The sentinel is the reserved key of an inline directive; the `{` that opens
the directive, and any whitespace after it, is suppressed along with it.
Trailing characters that could still become a directive are held back until
the next fragment decides them. Once the sentinel shows up everything else
in this stream is suppressed from display.
"""
import logging
from typing import Optional

import constants as C

logger = logging.getLogger(__name__)


class MarkerSniffer:
    """Rolling "does the suffix match a prefix of the sentinel" filter."""

    def __init__(self, sentinel: str = C.TOOL_CALL_SENTINEL):
        if not sentinel:
            raise ValueError("sentinel must be a non-empty string")
        self.sentinel = sentinel
        self.pending = ""
        self.suppressed = False
        self.suppressed_since: Optional[int] = None
        self._raw_length = 0
        self._forwarded: list[str] = []

    @property
    def forwarded_text(self) -> str:
        """Everything released for display so far."""
        return "".join(self._forwarded)

    def feed(self, fragment: str) -> Optional[str]:
        """Accept one raw fragment; return the text that is safe to show now."""
        self._raw_length += len(fragment)
        if self.suppressed or not fragment:
            return None

        self.pending += fragment
        idx = self.pending.find(self.sentinel)
        if idx != -1:
            cut = self._directive_start(self.pending, idx)
            self.suppressed = True
            self.suppressed_since = self._raw_length - len(self.pending) + cut
            logger.debug("Tool-call marker confirmed at offset %d", self.suppressed_since)
            safe, self.pending = self.pending[:cut], ""
            return self._release(safe)

        held = self._held_suffix_length(self.pending)
        if held:
            safe, self.pending = self.pending[:-held], self.pending[-held:]
        else:
            safe, self.pending = self.pending, ""
        return self._release(safe)

    def finish(self) -> Optional[str]:
        """Stream ended: withheld characters that never became the sentinel are prose."""
        if self.suppressed:
            return None
        safe, self.pending = self.pending, ""
        return self._release(safe)

    @staticmethod
    def _directive_start(text: str, idx: int) -> int:
        # Back over whitespace to the opening brace, if there is one
        start = idx
        while start > 0 and text[start - 1].isspace():
            start -= 1
        if start > 0 and text[start - 1] == "{":
            return start - 1
        return idx

    def _held_suffix_length(self, text: str) -> int:
        # "{", optional whitespace, then a strict prefix of the sentinel
        brace = text.rfind("{")
        if brace != -1:
            rest = text[brace + 1:].lstrip()
            if len(rest) < len(self.sentinel) and self.sentinel.startswith(rest):
                return len(text) - brace
        # Otherwise the longest strict prefix of the sentinel the text ends with
        for size in range(min(len(self.sentinel) - 1, len(text)), 0, -1):
            if text.endswith(self.sentinel[:size]):
                return size
        return 0

    def _release(self, text: str) -> Optional[str]:
        if not text:
            return None
        self._forwarded.append(text)
        return text
