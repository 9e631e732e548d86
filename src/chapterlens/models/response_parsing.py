"""Turn raw model replies into typed analysis results.

Structured kinds get one extraction pass, one parse, one repair attempt,
and one more parse. Anything still unreadable degrades to
``UnparsedResult`` instead of raising.
"""

from __future__ import annotations

import json
import logging
import re

from chapterlens.models.base import AnalysisKind
from chapterlens.models.results import (
    AnalysisResult,
    SummaryResult,
    UnparsedResult,
    result_from_payload,
)

logger = logging.getLogger(__name__)

# Greedy: first opener through last closer anywhere in the reply.
_JSON_SPAN = re.compile(r"[\[{].*[\]}]", re.DOTALL)
_CLOSERS = {"{": "}", "[": "]"}


def extract_json_span(text: str) -> str:
    """Return the widest bracketed span in ``text``.

    With no closing bracket at all (a reply cut off mid-payload) the span
    runs from the first opener to the end of the text.
    """
    match = _JSON_SPAN.search(text)
    if match:
        return match.group(0)
    starts = [i for i in (text.find("{"), text.find("[")) if i >= 0]
    if starts:
        return text[min(starts):].rstrip()
    return text.strip()


def repair_json(candidate: str) -> str:
    """Append the closers needed to balance ``candidate``'s open brackets.

    Brackets inside string literals are ignored. An unterminated string is
    closed first. If nothing is left open, a single closer matching the
    span's opening character is appended.
    """
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in candidate:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(ch)
        elif ch in ("}", "]") and stack and _CLOSERS[stack[-1]] == ch:
            stack.pop()

    suffix = '"' if in_string else ""
    if stack:
        suffix += "".join(_CLOSERS[opener] for opener in reversed(stack))
    elif candidate[:1] in _CLOSERS:
        suffix += _CLOSERS[candidate[0]]
    return candidate + suffix


def parse_json_payload(text: str) -> object:
    """Extract and parse the JSON payload of a reply.

    Raises ``json.JSONDecodeError`` if the repaired span still fails.
    """
    candidate = extract_json_span(text)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        return json.loads(repair_json(candidate))


def interpret_response(raw: str, kind: AnalysisKind | str) -> AnalysisResult:
    """Interpret a model reply for the given analysis kind."""
    kind = AnalysisKind.coerce(kind)
    if not kind.expects_json:
        return SummaryResult(text=raw)

    try:
        payload = parse_json_payload(raw)
    except json.JSONDecodeError as e:
        logger.warning(
            "Unparseable %s reply (%s); returning raw text: %s",
            kind.value, e, raw[:200],
        )
        return UnparsedResult(raw=raw, kind=kind)

    result = result_from_payload(kind, payload)
    if result is None:
        logger.warning(
            "Reply for %s parsed as %s, not the expected shape",
            kind.value, type(payload).__name__,
        )
        return UnparsedResult(raw=raw, kind=kind)
    return result
