"""Request types, the chat client, rate limiting and reply parsing."""

from chapterlens.models.base import AnalysisKind, ChatMessage, PromptParams
from chapterlens.models.rate_limit import RateLimitGate
from chapterlens.models.results import AnalysisResult, UnparsedResult

__all__ = [
    "AnalysisKind",
    "AnalysisResult",
    "ChatMessage",
    "PromptParams",
    "RateLimitGate",
    "UnparsedResult",
]
