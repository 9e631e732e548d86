"""Helpers for raw Project Gutenberg downloads."""

from __future__ import annotations

import re
from dataclasses import dataclass

START_MARKERS = (
    "*** START OF THIS PROJECT GUTENBERG EBOOK",
    "*** START OF THE PROJECT GUTENBERG EBOOK",
    "START OF THE PROJECT GUTENBERG EBOOK",
    "START OF THIS PROJECT GUTENBERG EBOOK",
)

END_MARKERS = (
    "*** END OF THIS PROJECT GUTENBERG EBOOK",
    "*** END OF THE PROJECT GUTENBERG EBOOK",
    "END OF THE PROJECT GUTENBERG EBOOK",
    "END OF THIS PROJECT GUTENBERG EBOOK",
)

_FIELDS = {
    "title": (re.compile(r"Title:\s*([^\r\n]+)", re.IGNORECASE), "Unknown Title"),
    "author": (re.compile(r"Author:\s*([^\r\n]+)", re.IGNORECASE), "Unknown Author"),
    "release_date": (re.compile(r"Release Date:\s*([^\r\n]+)", re.IGNORECASE), "Unknown Date"),
    "language": (re.compile(r"Language:\s*([^\r\n]+)", re.IGNORECASE), "English"),
}


@dataclass(frozen=True)
class BookMetadata:
    title: str
    author: str
    release_date: str
    language: str


def strip_gutenberg_boilerplate(text: str) -> str:
    """Return the narrative between the START and END license markers.

    Text without markers is returned stripped but otherwise unchanged.
    """
    start = 0
    end = len(text)

    for marker in START_MARKERS:
        pos = text.find(marker)
        if pos != -1:
            line_end = text.find("\n", pos)
            if line_end != -1:
                start = line_end + 1
                break

    for marker in END_MARKERS:
        pos = text.find(marker, start)
        if pos != -1:
            end = pos
            break

    return text[start:end].strip()


def extract_basic_metadata(text: str) -> BookMetadata:
    """Read title/author/release date/language from the Gutenberg header."""
    values = {}
    for key, (pattern, default) in _FIELDS.items():
        match = pattern.search(text)
        values[key] = match.group(1).strip() if match else default
    return BookMetadata(**values)
