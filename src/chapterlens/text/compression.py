"""Content-aware text compression before sending chapters to an LLM.

Each analysis kind gets its own extractive strategy. Paragraph-based
strategies score blank-line-separated paragraphs; the summary strategy
scores sentences. All scoring is deterministic and depends only on the
text. The output of ``compress_text`` is never longer than its input.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

from chapterlens.models.base import AnalysisKind
from chapterlens.utils.tokens import estimate_tokens

SUMMARIZED_MARKER = "[...content summarized...]"
BEGINNING_MARKER = "[...beginning section...]"
MIDDLE_MARKER = "[...middle section...]"
OMITTED_MARKER = "[...content omitted for length...]"

EMOTION_WORDS = (
    "feel", "felt", "emotion", "angry", "happy", "sad", "joy", "fear",
    "love", "hate", "upset", "worried", "anxious", "excited", "nervous",
)

SENTIMENT_WORDS = EMOTION_WORDS + (
    "afraid", "scared", "terrified", "delighted", "thrilled", "horrified",
    "pleased", "satisfied", "disappointed", "devastated", "hopeful",
    "hopeless", "desperate", "content", "miserable", "ecstatic",
)

THEMATIC_WORDS = (
    "truth", "beauty", "justice", "freedom", "love", "hate", "war", "peace",
    "life", "death", "fate", "destiny", "choice", "responsibility", "moral",
    "ethics", "right", "wrong", "good", "evil", "society", "individual",
    "nature", "civilization", "power", "corruption", "redemption", "sacrifice",
    "identity", "meaning", "purpose", "struggle", "conflict", "harmony",
    "balance", "chaos", "order", "tradition", "change", "progress",
)

NARRATIVE_WORDS = (
    "said", "asked", "replied", "told", "felt", "thought", "knew",
    "because", "therefore", "however", "although",
    "suddenly", "finally", "eventually",
)

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_SENTENCE_BREAK = re.compile(r"([.!?])\s*(?=[A-Z])")
_CAPITALIZED = re.compile(r"\b[A-Z][a-z]+\b")
_DIALOGUE = re.compile(r"[\"'].*?[\"']")
_QUOTE_CHAR = re.compile(r"[\"']")


def _word_family(words: tuple[str, ...]) -> list[re.Pattern]:
    # "fear" also counts "fearful", "fears", ...
    return [re.compile(rf"\b{word}\w*\b", re.IGNORECASE) for word in words]


_SENTIMENT_PATTERNS = _word_family(SENTIMENT_WORDS)
_THEMATIC_PATTERNS = _word_family(THEMATIC_WORDS)


def split_paragraphs(text: str) -> list[str]:
    return _PARAGRAPH_SPLIT.split(text)


def split_sentences(text: str) -> list[str]:
    marked = _SENTENCE_BREAK.sub(r"\1|", text)
    return [s for s in marked.split("|") if s.strip()]


def _top_indices(scores: list[float], count: int) -> list[int]:
    """Indices of the ``count`` highest scores; ties keep original order."""
    ranked = sorted(range(len(scores)), key=lambda i: -scores[i])
    return ranked[:count]


# -- characters / character-graph ----------------------------------------


def score_character_paragraph(paragraph: str) -> float:
    score = 2 * len(_CAPITALIZED.findall(paragraph))
    score += 3 * len(_DIALOGUE.findall(paragraph))
    lowered = paragraph.lower()
    score += sum(1 for word in EMOTION_WORDS if word in lowered)
    return float(score)


def compress_for_characters(text: str, max_length: int = 2000) -> str:
    """Keep dialogue- and name-heavy paragraphs, plus first and last."""
    if len(text) <= max_length:
        return text

    paragraphs = split_paragraphs(text)
    scores = [score_character_paragraph(p) for p in paragraphs]
    keep = max(5, math.ceil(len(paragraphs) * max_length / len(text)))
    top = _top_indices(scores, keep)

    last = len(paragraphs) - 1
    middle = sorted(i for i in top if i not in (0, last))
    selected = [0, *middle] + ([last] if last > 0 else [])
    result = "\n\n".join(paragraphs[i] for i in selected)

    if len(result) > max_length:
        best = [paragraphs[i] for i in top[:3]]
        result = "\n\n".join([
            paragraphs[0],
            SUMMARIZED_MARKER,
            *best,
            SUMMARIZED_MARKER,
            paragraphs[last],
        ])
    return result


# -- sentiment -------------------------------------------------------------


def score_sentiment_paragraph(paragraph: str) -> float:
    score = 0.0
    for pattern in _SENTIMENT_PATTERNS:
        score += 2 * len(pattern.findall(paragraph))
    score += 3 * paragraph.count("!")
    score += paragraph.count("?")
    score += len(_QUOTE_CHAR.findall(paragraph)) / 2
    return score


def compress_for_sentiment(text: str, max_length: int = 2000) -> str:
    """Keep the most emotional paragraphs from each third of the text.

    Sampling every third separately preserves the chapter's emotional arc
    rather than only its single most intense stretch.
    """
    if len(text) <= max_length:
        return text

    paragraphs = split_paragraphs(text)
    scores = [score_sentiment_paragraph(p) for p in paragraphs]
    third = len(paragraphs) // 3

    def best_of(start: int, stop: int) -> list[str]:
        indices = sorted(range(start, stop), key=lambda i: -scores[i])[:2]
        return [paragraphs[i] for i in indices]

    return "\n\n".join([
        paragraphs[0],
        *best_of(0, third),
        BEGINNING_MARKER,
        *best_of(third, third * 2),
        MIDDLE_MARKER,
        *best_of(third * 2, len(paragraphs)),
        paragraphs[-1],
    ])


# -- themes ----------------------------------------------------------------


def score_theme_paragraph(paragraph: str) -> float:
    score = 0.0
    for pattern in _THEMATIC_PATTERNS:
        score += 2 * len(pattern.findall(paragraph))
    score += min(5.0, len(paragraph) / 200)
    if len(_QUOTE_CHAR.findall(paragraph)) < 4:
        score += 2
    return score


def compress_for_themes(text: str, max_length: int = 2000) -> str:
    """Keep the six most theme-bearing paragraphs, plus first and last."""
    if len(text) <= max_length:
        return text

    paragraphs = split_paragraphs(text)
    scores = [score_theme_paragraph(p) for p in paragraphs]
    first, last = paragraphs[0], paragraphs[-1]
    top = [paragraphs[i] for i in _top_indices(scores, 6)]
    return "\n\n".join([first, *(p for p in top if p not in (first, last)), last])


# -- summary / default -----------------------------------------------------


def score_sentence(sentence: str) -> float:
    score = min(5.0, len(sentence) / 20)
    if '"' in sentence or "'" in sentence:
        score += 2
    if _CAPITALIZED.search(sentence):
        score += 1
    lowered = sentence.lower()
    score += 0.5 * sum(1 for word in NARRATIVE_WORDS if word in lowered)
    return score


def extract_key_content(text: str, compression_level: int = 3) -> str:
    """Sentence-level extractive compression.

    ``compression_level`` runs from 1 (keep 85% of sentences) to 5 (keep
    25%). The first and last three sentences are always kept.
    """
    if len(text) < 2000:
        return text

    sentences = split_sentences(text)
    if len(sentences) < 10:
        return text

    keep_percent = max(5, 100 - compression_level * 15)
    keep = max(10, math.floor(len(sentences) * keep_percent / 100))
    scores = [score_sentence(s) for s in sentences]

    selected = set(_top_indices(scores, keep))
    selected.update(range(min(3, len(sentences))))
    selected.update(range(max(0, len(sentences) - 3), len(sentences)))
    return " ".join(sentences[i] for i in sorted(selected))


# -- dispatch --------------------------------------------------------------


def compress_text(
    text: str,
    kind: AnalysisKind | str,
    max_length: int = 2000,
) -> str:
    """Compress ``text`` with the strategy for ``kind``.

    Unknown kinds (including ``"default"``) use light sentence extraction.
    Never returns something longer than ``text``.
    """
    if len(text) <= max_length:
        return text

    if kind in (AnalysisKind.CHARACTERS, AnalysisKind.CHARACTER_GRAPH):
        result = compress_for_characters(text, max_length)
    elif kind == AnalysisKind.SENTIMENT:
        result = compress_for_sentiment(text, max_length)
    elif kind == AnalysisKind.THEMES:
        result = compress_for_themes(text, max_length)
    elif kind == AnalysisKind.SUMMARY:
        result = extract_key_content(text, 3)
    else:
        result = extract_key_content(text, 2)

    if len(result) > len(text):
        return text
    return result


def truncate_for_analysis(
    text: str,
    kind: AnalysisKind | str,
    max_length: int = 4000,
) -> str:
    """Compress ``text`` and guarantee the result fits in ``max_length``.

    When content-aware compression is not enough, falls back to equal
    slices from the beginning, middle, and end of the original text.
    """
    compressed = compress_text(text, kind, max_length)
    if len(compressed) <= max_length:
        return compressed

    separator = f"\n\n{OMITTED_MARKER}\n\n"
    third = (max_length - 2 * len(separator)) // 3
    if third <= 0:
        return text[:max(0, max_length)]

    mid = len(text) // 2
    beginning = text[:third]
    middle = text[mid - third // 2:mid - third // 2 + third]
    end = text[len(text) - third:]
    return separator.join([beginning, middle, end])


@dataclass(frozen=True)
class CompressionPlan:
    compression_level: int
    should_compress: bool
    estimated_tokens: int
    estimated_request_tokens: int


def plan_compression(text_length: int) -> CompressionPlan:
    """Choose a compression level from a chapter's estimated token count."""
    tokens = estimate_tokens(text_length)
    level = 1
    for threshold, candidate in ((7000, 5), (5000, 4), (3000, 3), (2000, 2)):
        if tokens > threshold:
            level = candidate
            break
    return CompressionPlan(
        compression_level=level,
        should_compress=level > 1,
        estimated_tokens=tokens,
        estimated_request_tokens=tokens + 500,
    )
