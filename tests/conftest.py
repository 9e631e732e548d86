"""Shared test fixtures for chapterlens."""

from __future__ import annotations

import json

import httpx
import pytest

from chapterlens.config import (
    CompressionConfig,
    Config,
    ModelConfig,
    RateLimitConfig,
    ServerConfig,
)
from chapterlens.models.openai_provider import ChatCompletionClient
from chapterlens.models.rate_limit import RateLimitGate
from chapterlens.pipeline import AnalysisPipeline

BASE_URL = "https://llm.example.test/openai/v1"


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingSleep:
    """Async sleep stand-in that records durations and advances a clock."""

    def __init__(self, clock: FakeClock | None = None):
        self.calls: list[float] = []
        self._clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._clock is not None:
            self._clock.advance(int(seconds * 1000))


def completion_body(content: str, model: str = "llama3-70b-8192") -> dict:
    return {
        "id": "chatcmpl-test",
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 120, "completion_tokens": 40, "total_tokens": 160},
    }


class FakeLLM:
    """MockTransport handler replying with queued contents or responses.

    The last queued reply repeats once the queue runs dry.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._replies: list[str | httpx.Response] = []

    def reply(self, *replies: str | httpx.Response) -> FakeLLM:
        self._replies.extend(replies)
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self._replies.pop(0) if len(self._replies) > 1 else self._replies[0]
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=completion_body(reply), request=request)

    def payload(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content.decode("utf-8"))


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper(clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture
def config() -> Config:
    """Provide a test configuration with a fake endpoint and a key."""
    return Config(
        server=ServerConfig(host="127.0.0.1", port=9999),
        model=ModelConfig(base_url=BASE_URL, api_key="gsk-test-key"),
        rate_limit=RateLimitConfig(max_calls_per_minute=5, max_retries=3),
        compression=CompressionConfig(max_chapter_chars=4000),
    )


@pytest.fixture
def gate(clock: FakeClock, config: Config) -> RateLimitGate:
    return RateLimitGate.from_config(config.rate_limit, clock=clock)


@pytest.fixture
async def pipeline(
    config: Config, gate: RateLimitGate, sleeper: RecordingSleep, llm: FakeLLM,
):
    """Pipeline whose HTTP traffic goes to the ``llm`` fake."""
    client = ChatCompletionClient(config.model, transport=httpx.MockTransport(llm))
    p = AnalysisPipeline(config, gate=gate, client=client, sleep=sleeper)
    yield p
    await p.aclose()


@pytest.fixture
def sample_book() -> str:
    """Twelve chapters of plain prose under CHAPTER <roman> headings."""
    numerals = ["I", "II", "III", "IV", "V", "VI", "VII", "VIII", "IX", "X", "XI", "XII"]
    sentence = (
        "the old house stood at the end of the lane and the wind moved "
        "through the tall grass near the garden wall. "
    )
    parts = ["the preface of this small volume is short.\n\n"]
    for numeral in numerals:
        body = (sentence * 8 + "\n\n") * 5
        parts.append(f"CHAPTER {numeral}\n\n{body}")
    return "".join(parts)
