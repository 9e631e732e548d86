"""Core request types shared by the pipeline and the chat client.

``PromptParams.to_payload()`` is the exact wire body sent to the
chat-completions endpoint.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from chapterlens.exceptions import UnsupportedAnalysisError


class AnalysisKind(str, Enum):
    """The literary analyses the pipeline can run on a chapter."""

    CHARACTERS = "characters"
    SUMMARY = "summary"
    SENTIMENT = "sentiment"
    THEMES = "themes"
    CHARACTER_GRAPH = "character-graph"

    @classmethod
    def coerce(cls, value: AnalysisKind | str) -> AnalysisKind:
        """Parse a kind name, raising UnsupportedAnalysisError for unknown ones."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedAnalysisError(value) from None

    @property
    def expects_json(self) -> bool:
        return self is not AnalysisKind.SUMMARY


@dataclass(frozen=True)
class ChatMessage:
    role: str  # "system" | "user"
    content: str


@dataclass(frozen=True)
class PromptParams:
    """A complete chat-completion request."""

    model: str
    messages: list[ChatMessage]
    temperature: float = 0.2

    def to_payload(self) -> dict:
        return {
            "model": self.model,
            "messages": [
                {"role": m.role, "content": m.content} for m in self.messages
            ],
            "temperature": self.temperature,
        }

    @property
    def prompt_chars(self) -> int:
        return sum(len(m.content) for m in self.messages)


@dataclass
class TokenUsage:
    """Token usage statistics for a model response."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ModelResponse:
    """Text reply from a chat completion."""

    text: str
    model: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)
    latency_ms: int = 0
    finish_reason: str = ""
