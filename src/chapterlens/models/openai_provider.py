"""OpenAI-compatible chat-completions client.

Talks to Groq by default, or to any endpoint that serves
``POST /chat/completions`` with bearer-token auth. HTTP failures are
mapped onto the chapterlens error taxonomy. Transport failures
(``httpx.TransportError``) propagate unchanged.
"""

from __future__ import annotations

import json
import logging
import math
import time

import httpx

from chapterlens.config import ModelConfig
from chapterlens.exceptions import (
    AuthenticationError,
    MissingCredentialError,
    ThrottledError,
    UpstreamAPIError,
)
from chapterlens.models.base import ModelResponse, PromptParams, TokenUsage
from chapterlens.utils.tokens import estimate_tokens

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 5.0


def _parse_retry_after(value: str | None) -> float:
    """Seconds from a ``retry-after`` header, 5 when absent or unreadable."""
    if not value:
        return DEFAULT_RETRY_AFTER_SECONDS
    try:
        seconds = float(value.strip())
    except ValueError:
        return DEFAULT_RETRY_AFTER_SECONDS
    if not math.isfinite(seconds):
        return DEFAULT_RETRY_AFTER_SECONDS
    return max(0.0, seconds)


def _error_message(response: httpx.Response) -> str:
    """Best human-readable message from an error response."""
    try:
        data = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        data = None
    if isinstance(data, dict):
        if isinstance(data.get("message"), str) and data["message"].strip():
            return data["message"].strip()
        error = data.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"].strip()
        if isinstance(error, str) and error.strip():
            return error.strip()
    return response.reason_phrase or f"HTTP {response.status_code}"


class ChatCompletionClient:
    """Single-shot chat completions against an OpenAI-compatible API."""

    def __init__(
        self,
        config: ModelConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=httpx.Timeout(config.timeout_seconds),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def complete(self, params: PromptParams, api_key: str) -> ModelResponse:
        """Send one request and return the assistant text."""
        api_key = (api_key or "").strip()
        if not api_key:
            raise MissingCredentialError()

        payload = params.to_payload()
        logger.debug(
            "chat request model=%s messages=%d prompt_chars=%d est_tokens=%d",
            params.model,
            len(params.messages),
            params.prompt_chars,
            estimate_tokens(params.prompt_chars),
        )

        start = time.monotonic()
        response = await self._client.post(
            "/chat/completions",
            json=payload,
            headers={"Authorization": f"Bearer {api_key}"},
        )
        latency = int((time.monotonic() - start) * 1000)

        if response.status_code == 401:
            raise AuthenticationError()
        if response.status_code == 429:
            raise ThrottledError(
                retry_after=_parse_retry_after(response.headers.get("retry-after")),
            )
        if response.is_error:
            raise UpstreamAPIError(
                f"API error: {_error_message(response)}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise UpstreamAPIError(
                f"Malformed response from {params.model}: {e}",
                status_code=response.status_code,
            ) from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices or not isinstance(choices, list):
            raise UpstreamAPIError(
                f"Malformed response from {params.model}: missing or empty 'choices'",
                status_code=response.status_code,
            )
        choice = choices[0] if isinstance(choices[0], dict) else {}
        message = choice.get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise UpstreamAPIError(
                f"Malformed response from {params.model}: no message content",
                status_code=response.status_code,
            )

        usage_data = data.get("usage")
        if not isinstance(usage_data, dict):
            usage_data = {}
        usage = TokenUsage(
            input_tokens=usage_data.get("prompt_tokens", 0),
            output_tokens=usage_data.get("completion_tokens", 0),
            total_tokens=usage_data.get("total_tokens", 0),
        )
        logger.debug(
            "chat response model=%s latency_ms=%d tokens=%d",
            params.model, latency, usage.total_tokens,
        )
        return ModelResponse(
            text=content,
            model=str(data.get("model") or params.model),
            usage=usage,
            latency_ms=latency,
            finish_reason=str(choice.get("finish_reason", "") or ""),
        )
