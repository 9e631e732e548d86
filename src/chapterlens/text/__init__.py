"""Text preparation: chapter segmentation and content-aware compression."""

from chapterlens.text.chapters import Chapter, HeadingPattern, segment_chapters
from chapterlens.text.compression import compress_text, truncate_for_analysis

__all__ = [
    "Chapter",
    "HeadingPattern",
    "compress_text",
    "segment_chapters",
    "truncate_for_analysis",
]
