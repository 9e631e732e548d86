"""Unified token estimation.

Single source of truth for the ~4 chars/token heuristic used
throughout the codebase. Not a real tokenizer.
"""

from __future__ import annotations

import math

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str | int) -> int:
    """Estimate token count as ceil(chars / 4).

    Accepts either the text itself or an already-known character count.
    """
    length = text if isinstance(text, int) else len(text or "")
    return math.ceil(max(0, length) / CHARS_PER_TOKEN)


def max_chars_for_tokens(tokens: int) -> int:
    """Largest character count whose estimate stays within ``tokens``."""
    return max(0, tokens) * CHARS_PER_TOKEN
