"""Chapter analysis pipeline.

``AnalysisPipeline`` ties the stages together:

    chapter text -> truncate_for_analysis -> build_prompt -> fit_prompt
      -> RateLimitGate wait -> ChatCompletionClient -> interpret_response

It holds no per-book state. The rate-limit gate is the only mutable
state, and it is injected so several pipelines (or tests) can share or
isolate it deliberately.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass

from chapterlens.config import Config
from chapterlens.exceptions import (
    MissingCredentialError,
    RateLimitExceededError,
    UnsupportedAnalysisError,
)
from chapterlens.models.base import AnalysisKind, ChatMessage, PromptParams
from chapterlens.models.openai_provider import ChatCompletionClient
from chapterlens.models.rate_limit import LimitsInfo, RateLimitGate
from chapterlens.models.response_parsing import interpret_response, parse_json_payload
from chapterlens.models.results import AnalysisResult
from chapterlens.models.retry import call_with_rate_limit
from chapterlens.prompts.budget import fit_prompt
from chapterlens.prompts.templates import build_language_prompt, build_prompt, system_prompt
from chapterlens.text.chapters import Chapter
from chapterlens.text.compression import truncate_for_analysis

logger = logging.getLogger(__name__)

LANGUAGE_SAMPLE_CHARS = 300
LANGUAGE_CACHE_KEY_CHARS = 100
LANGUAGE_TEMPERATURE = 0.1


@dataclass(frozen=True)
class LanguageDetection:
    language: str
    confidence: float

    def to_dict(self) -> dict:
        return {"language": self.language, "confidence": self.confidence}


UNKNOWN_LANGUAGE = LanguageDetection(language="Unknown", confidence=0.0)


def language_sample(text: str) -> str:
    """Beginning, middle and end excerpts, so mixed-language books show up."""
    size = min(LANGUAGE_SAMPLE_CHARS, len(text) // 3)
    mid = len(text) // 2
    beginning = text[:size]
    middle = text[mid - size // 2:mid + size // 2]
    end = text[len(text) - size:]
    return f"{beginning}\n\n{middle}\n\n{end}"


class AnalysisPipeline:
    """Runs literary analyses of chapter text against a chat model."""

    def __init__(
        self,
        config: Config | None = None,
        *,
        gate: RateLimitGate | None = None,
        client: ChatCompletionClient | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ):
        self._config = config or Config()
        self._gate = gate or RateLimitGate.from_config(self._config.rate_limit)
        self._client = client or ChatCompletionClient(self._config.model)
        self._sleep = sleep
        self._language_cache: dict[str, LanguageDetection] = {}

    @property
    def config(self) -> Config:
        return self._config

    @property
    def gate(self) -> RateLimitGate:
        return self._gate

    @property
    def endpoint(self) -> str:
        return self._config.rate_limit.endpoint

    async def aclose(self) -> None:
        await self._client.aclose()

    def _resolve_key(self, api_key: str | None) -> str:
        key = (api_key if api_key is not None else self._config.model.api_key) or ""
        if not key.strip():
            raise MissingCredentialError()
        return key.strip()

    async def _complete(self, params: PromptParams, api_key: str) -> str:
        async def invoke() -> str:
            response = await self._client.complete(params, api_key)
            return response.text

        return await call_with_rate_limit(
            invoke,
            gate=self._gate,
            endpoint=self.endpoint,
            sleep=self._sleep,
        )

    def prepare_params(
        self,
        chapter_text: str,
        kind: AnalysisKind | str,
        model: str | None = None,
    ) -> PromptParams:
        """Build the exact request for one analysis without sending it."""
        kind = AnalysisKind.coerce(kind)
        model_name = model or self._config.model.large_model
        truncated = truncate_for_analysis(
            chapter_text, kind, self._config.compression.max_chapter_chars,
        )
        prompt = build_prompt(truncated, kind)
        if not prompt:
            raise UnsupportedAnalysisError(kind.value)
        prompt = fit_prompt(
            prompt,
            kind,
            model_name,
            reserved_tokens=self._config.model.reserved_tokens,
            token_limit=self._config.model.token_limit,
        )
        return PromptParams(
            model=model_name,
            messages=[
                ChatMessage(role="system", content=system_prompt()),
                ChatMessage(role="user", content=prompt),
            ],
            temperature=self._config.model.temperature,
        )

    async def analyze(
        self,
        chapter_text: str,
        kind: AnalysisKind | str,
        api_key: str | None = None,
        model: str | None = None,
    ) -> AnalysisResult:
        """Analyze one chapter. Raises on any failure except unparseable replies."""
        kind = AnalysisKind.coerce(kind)
        key = self._resolve_key(api_key)
        params = self.prepare_params(chapter_text, kind, model)
        logger.info(
            "Analyzing %d chars for %s with %s", len(chapter_text), kind.value, params.model,
        )
        raw = await self._complete(params, key)
        return interpret_response(raw, kind)

    async def analyze_all(
        self,
        chapters: Sequence[Chapter],
        kind: AnalysisKind | str,
        api_key: str | None = None,
        model: str | None = None,
        *,
        existing: Mapping[int, AnalysisResult] | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> dict[int, AnalysisResult]:
        """Analyze chapters strictly in order, one request at a time.

        Indices already in ``existing`` are skipped and copied through.
        The first failure propagates; results gathered so far are lost to
        the caller, so persist them from ``on_progress`` if needed.
        """
        kind = AnalysisKind.coerce(kind)
        key = self._resolve_key(api_key)
        results: dict[int, AnalysisResult] = dict(existing or {})
        for index, chapter in enumerate(chapters):
            if on_progress is not None:
                on_progress(index, len(chapters))
            if index in results:
                continue
            results[index] = await self.analyze(chapter.content, kind, key, model)
        return results

    async def detect_language(
        self,
        text: str,
        api_key: str | None = None,
    ) -> LanguageDetection:
        """Ask the small model which language ``text`` is written in.

        Fails fast with RateLimitExceededError instead of waiting when any
        rate-limit window is exhausted.
        """
        cache_key = text[:LANGUAGE_CACHE_KEY_CHARS]
        cached = self._language_cache.get(cache_key)
        if cached is not None:
            return cached

        key = self._resolve_key(api_key)
        if not self._gate.can_call(self.endpoint):
            raise RateLimitExceededError(self._gate.time_until_admitted(self.endpoint))

        system, user = build_language_prompt(language_sample(text))
        params = PromptParams(
            model=self._config.model.small_model,
            messages=[
                ChatMessage(role="system", content=system),
                ChatMessage(role="user", content=user),
            ],
            temperature=LANGUAGE_TEMPERATURE,
        )
        raw = await self._complete(params, key)

        try:
            payload = parse_json_payload(raw)
            result = LanguageDetection(
                language=str(payload["language"]).strip() or "Unknown",
                confidence=float(payload.get("confidence", 0.0)),
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Error parsing language detection reply (%s): %s", e, raw[:200])
            return UNKNOWN_LANGUAGE

        self._language_cache[cache_key] = result
        return result

    def rate_limits(self) -> LimitsInfo:
        return self._gate.limits_info(self.endpoint)
