"""Tokenizer-backed token counting for prompts and conversation history."""
from __future__ import annotations

import logging
from threading import Lock
from typing import Iterable, Optional

import tiktoken

import constants as C

logger = logging.getLogger(__name__)

# Per-message framing overhead in chat-completion prompts
MESSAGE_OVERHEAD_TOKENS = 4


class TokenCounter:
    """Token counter with model-aware encoding selection.

    Encodings are loaded lazily and cached per model id. If an encoding cannot
    be loaded (unknown model and no cached BPE file available offline), the
    counter falls back to a character-based estimate for that model.
    """

    def __init__(self):
        self._lock = Lock()
        self._encodings: dict[str, Optional[object]] = {}

    def _encoding_for_model(self, model: Optional[str]):
        key = (model or "").strip() or "default"
        if key in self._encodings:
            return self._encodings[key]
        with self._lock:
            if key in self._encodings:
                return self._encodings[key]
            enc = None
            try:
                if model:
                    enc = tiktoken.encoding_for_model(model)
                else:
                    enc = tiktoken.get_encoding("cl100k_base")
            except KeyError:
                try:
                    enc = tiktoken.get_encoding("cl100k_base")
                except Exception as e:
                    logger.warning("tiktoken encoding unavailable, using estimates: %s", e)
            except Exception as e:
                logger.warning("tiktoken encoding unavailable, using estimates: %s", e)
            self._encodings[key] = enc
            return enc

    def count_text(self, text: str, model: Optional[str] = None) -> int:
        """Count tokens in plain text for the target model."""
        text = text or ""
        if not text:
            return 0
        enc = self._encoding_for_model(model)
        if enc is None:
            return max(1, len(text) // C.CHARS_PER_TOKEN_EST)
        return len(enc.encode(text, disallowed_special=()))

    def count_messages(self, messages: Iterable[dict], model: Optional[str] = None) -> int:
        """Count prompt tokens for a list of role/content dicts."""
        total = 0
        for item in messages:
            total += MESSAGE_OVERHEAD_TOKENS
            total += self.count_text(str(item.get("content") or ""), model=model)
        return total


_counter = TokenCounter()


def count_text_tokens(text: str, model: Optional[str] = None) -> int:
    """Module-level convenience wrapper for tokenizer counting."""
    return _counter.count_text(text, model=model)


def count_message_tokens(messages: Iterable[dict], model: Optional[str] = None) -> int:
    """Module-level convenience wrapper for prompt token counting."""
    return _counter.count_messages(messages, model=model)
