"""Tests for the chapterlens API server."""

from __future__ import annotations

import json

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from chapterlens.api.server import create_app
from chapterlens.models.openai_provider import ChatCompletionClient
from chapterlens.pipeline import AnalysisPipeline

CHAPTER = "CHAPTER I\n\nAnna crossed the square and waited for Peter by the fountain."


@pytest.fixture
def app(pipeline):
    """App with the test pipeline pre-injected (bypasses lifespan)."""
    return create_app(pipeline=pipeline)


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestSystemEndpoints:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": "0.1.0"}

    @pytest.mark.parametrize("origin", [
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://localhost",
    ])
    async def test_cors_allows_local_dev_servers(self, client, origin):
        response = await client.get("/health", headers={"Origin": origin})
        assert response.headers["access-control-allow-origin"] == origin

    async def test_cors_preflight_from_local_dev_server(self, client):
        response = await client.options("/analyze", headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "POST",
        })
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"

    @pytest.mark.parametrize("origin", [
        "http://evil.example",
        "http://localhost.evil.example",
        "https://localhost:3000",
    ])
    async def test_cors_rejects_other_origins(self, client, origin):
        response = await client.get("/health", headers={"Origin": origin})
        assert "access-control-allow-origin" not in response.headers

    async def test_rate_limits(self, client, pipeline):
        pipeline.gate.record_call(pipeline.endpoint)
        response = await client.get("/rate-limits")

        assert response.status_code == 200
        data = response.json()
        assert data["endpoint"] == "groq"
        assert data["minute_limit"] == {"used": 1, "max": 5, "remaining": 4}
        assert data["day_limit"]["max"] == 100
        assert data["time_to_wait_ms"] == 0


class TestChapters:
    async def test_split(self, client, sample_book):
        response = await client.post("/chapters", json={"text": sample_book})

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 12
        assert data["chapters"][0]["title"] == "Chapter 1: CHAPTER I"
        assert data["chapters"][0]["content"] is None
        assert data["chapters"][0]["preview"].startswith("the old house")

    async def test_include_content(self, client, sample_book):
        response = await client.post(
            "/chapters", params={"include_content": "true"}, json={"text": sample_book},
        )
        chapter = response.json()["chapters"][3]
        assert chapter["content"].startswith("CHAPTER IV")
        assert chapter["length"] == len(chapter["content"])

    async def test_strip_boilerplate(self, client):
        text = (
            "Title: A Book\n*** START OF THE PROJECT GUTENBERG EBOOK A BOOK ***\n"
            "Only the story.\n*** END OF THE PROJECT GUTENBERG EBOOK A BOOK ***\nLicense."
        )
        response = await client.post("/chapters", json={"text": text, "strip_boilerplate": True})
        chapter = response.json()["chapters"][0]
        assert chapter["title"] == "Complete Text"
        assert chapter["length"] == len("Only the story.")


class TestAnalyze:
    async def test_structured_result(self, client, llm):
        llm.reply(json.dumps([{"theme": "Waiting", "description": "Anna waits."}]))
        response = await client.post("/analyze", json={"text": CHAPTER, "kind": "themes"})

        assert response.status_code == 200
        assert response.json() == {
            "kind": "themes",
            "parsed": True,
            "result": [{"theme": "Waiting", "description": "Anna waits."}],
        }

    async def test_unparsed_result(self, client, llm):
        llm.reply("No themes I can see.")
        response = await client.post("/analyze", json={"text": CHAPTER, "kind": "themes"})

        assert response.status_code == 200
        assert response.json()["parsed"] is False
        assert response.json()["result"] == "No themes I can see."

    async def test_api_key_header(self, client, llm):
        llm.reply("Summary.")
        await client.post(
            "/analyze",
            json={"text": CHAPTER, "kind": "summary"},
            headers={"x-api-key": "gsk-header"},
        )
        assert llm.requests[0].headers["Authorization"] == "Bearer gsk-header"

    async def test_empty_text_rejected(self, client):
        response = await client.post("/analyze", json={"text": "", "kind": "summary"})
        assert response.status_code == 422

    async def test_unsupported_kind(self, client):
        response = await client.post("/analyze", json={"text": CHAPTER, "kind": "limerick"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Unsupported analysis type: limerick"

    async def test_blank_key(self, client):
        response = await client.post(
            "/analyze",
            json={"text": CHAPTER, "kind": "summary"},
            headers={"x-api-key": " "},
        )
        assert response.status_code == 400

    @pytest.mark.parametrize("upstream, status", [
        (httpx.Response(401, json={}), 401),
        (httpx.Response(429, headers={"retry-after": "1"}, json={}), 429),
        (httpx.Response(503, json={"message": "overloaded"}), 502),
    ])
    async def test_upstream_errors(self, client, llm, upstream, status):
        llm.reply(upstream)
        response = await client.post("/analyze", json={"text": CHAPTER, "kind": "summary"})
        assert response.status_code == status

    async def test_hourly_ceiling_is_429(self, client, pipeline, llm):
        for _ in range(pipeline.gate.max_calls_per_hour):
            pipeline.gate.record_call(pipeline.endpoint)
        llm.reply("unused")

        response = await client.post("/analyze", json={"text": CHAPTER, "kind": "summary"})

        assert response.status_code == 429
        assert "Rate limit reached" in response.json()["detail"]
        assert llm.requests == []

    async def test_unreachable_endpoint(self, config, gate, sleeper):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = ChatCompletionClient(config.model, transport=httpx.MockTransport(refuse))
        pipeline = AnalysisPipeline(config, gate=gate, client=client, sleep=sleeper)
        app = create_app(pipeline=pipeline)
        try:
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
                response = await c.post("/analyze", json={"text": CHAPTER, "kind": "summary"})
        finally:
            await pipeline.aclose()
        assert response.status_code == 503


class TestLanguage:
    async def test_detect(self, client, llm):
        llm.reply('{"language": "German", "confidence": 0.8}')
        response = await client.post("/language", json={"text": "Es war einmal ein Haus."})
        assert response.status_code == 200
        assert response.json() == {"language": "German", "confidence": 0.8}

    async def test_rate_limited(self, client, pipeline):
        for _ in range(5):
            pipeline.gate.record_call(pipeline.endpoint)
        response = await client.post("/language", json={"text": "Es war einmal."})
        assert response.status_code == 429
        assert "Rate limit reached" in response.json()["detail"]
