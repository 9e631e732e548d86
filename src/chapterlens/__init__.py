"""chapterlens: chapter-level literary analysis over an LLM chat API."""

__version__ = "0.1.0"
