"""Split book text into chapters.

Headings are found by an ordered list of ``HeadingPattern`` strategies.
Every match of every pattern becomes a marker; markers are sorted by
offset but deliberately not de-duplicated, so two patterns hitting the
same heading yield an extra (usually discarded) short span. Changing
that would shift chapter indices, which downstream caches key on.
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass

_NUMERAL = r"([IVXLCDM]+|\d+)"

MIN_CHAPTER_CHARS = 100
MAX_CHAPTERS = 30
TARGET_GROUPS = 20
FALLBACK_TITLE = "Complete Text"


@dataclass(frozen=True)
class Chapter:
    title: str
    content: str


@dataclass(frozen=True)
class HeadingPattern:
    """A named heading-detection strategy."""

    name: str
    regex: re.Pattern

    def find(self, text: str) -> list[tuple[int, str]]:
        return [(m.start(), m.group(0).strip()) for m in self.regex.finditer(text)]


DEFAULT_HEADING_PATTERNS: tuple[HeadingPattern, ...] = (
    HeadingPattern("upper", re.compile(rf"\bCHAPTER\s+{_NUMERAL}(?:\s+|:|\.)", re.IGNORECASE)),
    HeadingPattern("title", re.compile(rf"\bChapter\s+{_NUMERAL}(?:\s+|:|\.)")),
    HeadingPattern("numbered", re.compile(rf"\b{_NUMERAL}\.\s+")),
    HeadingPattern("bare", re.compile(rf"\n\s*{_NUMERAL}\s*\n")),
)


def find_markers(
    text: str,
    patterns: Sequence[HeadingPattern] = DEFAULT_HEADING_PATTERNS,
) -> list[tuple[int, str]]:
    """All heading matches from all patterns, sorted by offset."""
    markers: list[tuple[int, str]] = []
    for pattern in patterns:
        markers.extend(pattern.find(text))
    markers.sort(key=lambda marker: marker[0])
    return markers


def _group(chapters: list[Chapter]) -> list[Chapter]:
    size = math.ceil(len(chapters) / TARGET_GROUPS)
    grouped: list[Chapter] = []
    for i in range(0, len(chapters), size):
        run = chapters[i:i + size]
        grouped.append(Chapter(
            title=f"Chapters {run[0].title} - {run[-1].title}",
            content="\n\n".join(ch.content for ch in run),
        ))
    return grouped


def segment_chapters(
    text: str,
    patterns: Sequence[HeadingPattern] = DEFAULT_HEADING_PATTERNS,
) -> list[Chapter]:
    """Split ``text`` into titled chapters in reading order."""
    markers = find_markers(text, patterns)
    if not markers:
        return [Chapter(FALLBACK_TITLE, text)]

    chapters: list[Chapter] = []
    for i, (start, heading) in enumerate(markers):
        end = markers[i + 1][0] if i + 1 < len(markers) else len(text)
        content = text[start:end].strip()
        if len(content) > MIN_CHAPTER_CHARS:
            chapters.append(Chapter(f"Chapter {i + 1}: {heading}", content))

    if not chapters:
        return [Chapter(FALLBACK_TITLE, text)]
    if len(chapters) > MAX_CHAPTERS:
        return _group(chapters)
    return chapters


def chapter_preview(content: str, max_length: int = 200) -> str:
    """Chapter text minus its heading line, truncated for display."""
    body = re.sub(r"^.*?\n", "", content, count=1).strip()
    if len(body) <= max_length:
        return body
    return body[:max_length] + "..."
