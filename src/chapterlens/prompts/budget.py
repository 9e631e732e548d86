"""Fit an assembled prompt into a model's context budget.

The chapter text between the prompt's triple-quote delimiters is
recompressed so the instructions and output contract survive intact.
Prompts without delimiters are cut proportionally as a last resort.
"""

from __future__ import annotations

import logging
import math

from chapterlens.models.base import AnalysisKind
from chapterlens.prompts.templates import TEXT_DELIMITER
from chapterlens.text.compression import truncate_for_analysis
from chapterlens.utils.tokens import estimate_tokens, max_chars_for_tokens

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIMIT = 8192
DEFAULT_RESERVED_TOKENS = 1000  # system message + response


def _blind_truncate(prompt: str, factor: float, allowance: int) -> str:
    cut = prompt[:math.floor(len(prompt) * factor)] + "..."
    if len(cut) <= allowance:
        return cut
    if allowance < 3:
        return prompt[:allowance]
    return prompt[:allowance - 3] + "..."


def fit_prompt(
    prompt: str,
    kind: AnalysisKind | str,
    model: str = "",
    reserved_tokens: int = DEFAULT_RESERVED_TOKENS,
    token_limit: int = DEFAULT_TOKEN_LIMIT,
) -> str:
    """Return ``prompt`` shrunk to at most ``token_limit - reserved_tokens``.

    Prompts that already fit are returned unchanged.
    """
    available = token_limit - reserved_tokens
    estimated = estimate_tokens(prompt)
    if estimated <= available:
        return prompt

    factor = max(0, available) / estimated
    allowance = max_chars_for_tokens(available)
    logger.info(
        "Prompt for %s (%s) over budget: %d > %d tokens; reducing by %.2f",
        getattr(kind, "value", kind), model or "default model",
        estimated, available, factor,
    )

    start = prompt.find(TEXT_DELIMITER)
    end = prompt.rfind(TEXT_DELIMITER)
    inner_start = start + len(TEXT_DELIMITER)
    if start == -1 or end <= inner_start:
        return _blind_truncate(prompt, factor, allowance)

    prefix, inner, suffix = prompt[:inner_start], prompt[inner_start:end], prompt[end:]
    keep = math.floor(len(inner) * factor)
    fitted = prefix + truncate_for_analysis(inner, "default", keep) + suffix
    if len(fitted) <= allowance:
        return fitted

    # The proportional cut ignores the fixed prefix/suffix; use the exact room.
    room = allowance - len(prefix) - len(suffix)
    if room > 0:
        return prefix + truncate_for_analysis(inner, "default", room) + suffix
    return _blind_truncate(prompt, factor, allowance)
