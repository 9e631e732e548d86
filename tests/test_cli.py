"""Tests for CLI entry point."""

from __future__ import annotations

import json

import httpx
import pytest
from click.testing import CliRunner

from chapterlens import __main__ as cli_module
from chapterlens.__main__ import cli
from chapterlens.models.openai_provider import ChatCompletionClient
from chapterlens.models.rate_limit import RateLimitGate
from chapterlens.pipeline import AnalysisPipeline


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("CHAPTERLENS_LARGE_MODEL", "CHAPTERLENS_SMALL_MODEL", "GROQ_API_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "chapterlens.toml"
    path.write_text('[model]\napi_key = "gsk-from-file"\n\n[logging]\nlevel = "WARNING"\n')
    return path


@pytest.fixture
def book(tmp_path, sample_book):
    path = tmp_path / "book.txt"
    path.write_text(
        "Title: The Old House\nLanguage: English\n"
        "*** START OF THIS PROJECT GUTENBERG EBOOK THE OLD HOUSE ***\n"
        f"{sample_book}\n"
        "*** END OF THIS PROJECT GUTENBERG EBOOK THE OLD HOUSE ***\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def fake_pipeline(monkeypatch, llm, clock, sleeper):
    """Route the CLI's pipelines to the ``llm`` fake on a fake clock."""

    def factory(config):
        client = ChatCompletionClient(config.model, transport=httpx.MockTransport(llm))
        gate = RateLimitGate.from_config(config.rate_limit, clock=clock)
        return AnalysisPipeline(config, gate=gate, client=client, sleep=sleeper)

    monkeypatch.setattr(cli_module, "AnalysisPipeline", factory)
    return llm


def invoke(*args):
    return CliRunner().invoke(cli, [str(a) for a in args])


class TestCLI:
    """Test CLI commands."""

    def test_help(self):
        result = invoke("--help")
        assert result.exit_code == 0
        assert "chapterlens" in result.output

    def test_version(self):
        result = invoke("--version")
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_serve_help(self):
        result = invoke("serve", "--help")
        assert result.exit_code == 0
        assert "--host" in result.output
        assert "--port" in result.output

    def test_analyze_help_lists_kinds(self):
        result = invoke("analyze", "--help")
        assert result.exit_code == 0
        assert "character-graph" in result.output

    def test_bad_config(self, tmp_path, book):
        broken = tmp_path / "broken.toml"
        broken.write_text("[model\n")
        result = invoke("--config", broken, "chapters", book)
        assert result.exit_code == 1
        assert "Config error" in result.output


class TestOfflineCommands:
    def test_chapters(self, config_file, book):
        result = invoke("--config", config_file, "chapters", book)

        assert result.exit_code == 0
        rows = json.loads(result.stdout)
        assert len(rows) == 12
        assert rows[0]["title"] == "Chapter 1: CHAPTER I"
        assert rows[11]["index"] == 11

    def test_estimate(self, config_file, book):
        result = invoke("--config", config_file, "estimate", book, "--kind", "summary")

        assert result.exit_code == 0
        rows = json.loads(result.stdout)
        assert len(rows) == 12
        assert all(row["compressed_chars"] <= 4000 for row in rows)
        assert all(row["request_tokens"] <= 8192 - 1000 for row in rows)
        assert rows[0]["estimated_tokens"] == -(-rows[0]["chars"] // 4)

    def test_estimate_rejects_unknown_kind(self, config_file, book):
        result = invoke("--config", config_file, "estimate", book, "--kind", "limerick")
        assert result.exit_code == 2

    def test_limits(self, config_file):
        result = invoke("--config", config_file, "limits")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["endpoint"] == "groq"
        assert data["minute_limit"] == {"used": 0, "max": 5, "remaining": 5}
        assert data["time_to_wait_ms"] == 0


class TestAnalyzeCommand:
    def test_single_chapter(self, config_file, book, fake_pipeline):
        fake_pipeline.reply('{"overall": "Calm", "beginning": "Calm", "middle": "Calm", '
                            '"end": "Calm", "analysis": "Nothing happens."}')
        result = invoke(
            "--config", config_file, "analyze", book, "--kind", "sentiment", "--chapter", 2,
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["index"] == 2
        assert data["title"] == "Chapter 3: CHAPTER III"
        assert data["parsed"] is True
        assert data["result"]["overall"] == "Calm"
        request = fake_pipeline.requests[0]
        assert request.headers["Authorization"] == "Bearer gsk-from-file"

    def test_api_key_option(self, config_file, book, fake_pipeline):
        fake_pipeline.reply("A summary.")
        result = invoke(
            "--config", config_file, "analyze", book, "-k", "summary", "--api-key", "gsk-cli",
        )
        assert result.exit_code == 0, result.output
        assert fake_pipeline.requests[0].headers["Authorization"] == "Bearer gsk-cli"

    def test_all_chapters(self, config_file, book, fake_pipeline):
        fake_pipeline.reply("Summary.")
        result = invoke("--config", config_file, "analyze", book, "-k", "summary", "--all")

        assert result.exit_code == 0, result.output
        rows = json.loads(result.stdout)
        assert [row["index"] for row in rows] == list(range(12))
        assert len(fake_pipeline.requests) == 12

    def test_hourly_ceiling_stops_the_run(self, tmp_path, book, fake_pipeline):
        limited = tmp_path / "limited.toml"
        limited.write_text(
            '[model]\napi_key = "gsk-from-file"\n\n'
            "[rate_limit]\nmax_calls_per_minute = 5\nmax_calls_per_hour = 2\n"
        )
        fake_pipeline.reply("Summary.")
        result = invoke("--config", limited, "analyze", book, "-k", "summary", "--all")

        assert result.exit_code == 1
        assert "Rate limit reached" in result.output
        assert len(fake_pipeline.requests) == 2

    def test_chapter_out_of_range(self, config_file, book, fake_pipeline):
        result = invoke("--config", config_file, "analyze", book, "-k", "summary", "-c", 40)
        assert result.exit_code == 1
        assert "out of range" in result.output
        assert fake_pipeline.requests == []

    def test_invalid_key_exits_2(self, config_file, book, fake_pipeline):
        fake_pipeline.reply(httpx.Response(401, json={}))
        result = invoke("--config", config_file, "analyze", book, "-k", "summary")
        assert result.exit_code == 2
        assert "Invalid API key" in result.output

    def test_missing_key_exits_1(self, tmp_path, book, fake_pipeline):
        bare = tmp_path / "bare.toml"
        bare.write_text("")
        result = invoke("--config", bare, "analyze", book, "-k", "summary")
        assert result.exit_code == 1
        assert "API key is required" in result.output

    def test_language(self, config_file, book, fake_pipeline):
        fake_pipeline.reply('{"language": "English", "confidence": 0.99}')
        result = invoke("--config", config_file, "language", book)

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {
            "language": "English",
            "confidence": 0.99,
            "declared_language": "English",
        }
