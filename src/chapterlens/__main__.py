"""CLI entry point for chapterlens."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
import httpx

from chapterlens import __version__
from chapterlens.config import Config, ConfigError, load_config
from chapterlens.exceptions import AuthenticationError, ChapterLensError
from chapterlens.models.base import AnalysisKind
from chapterlens.models.results import UnparsedResult
from chapterlens.pipeline import AnalysisPipeline
from chapterlens.text.chapters import Chapter, chapter_preview, segment_chapters
from chapterlens.text.compression import plan_compression, truncate_for_analysis
from chapterlens.text.gutenberg import extract_basic_metadata, strip_gutenberg_boilerplate
from chapterlens.utils.tokens import estimate_tokens

_KIND_CHOICE = click.Choice([k.value for k in AnalysisKind])


def _echo_json(payload: object) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _read_book(path: Path, strip_boilerplate: bool) -> str:
    text = path.read_text(encoding="utf-8", errors="replace")
    return strip_gutenberg_boilerplate(text) if strip_boilerplate else text


def _load_chapters(path: Path, strip_boilerplate: bool) -> list[Chapter]:
    return segment_chapters(_read_book(path, strip_boilerplate))


def _run_pipeline(config: Config, coro_factory):
    """Run one pipeline coroutine and exit non-zero on pipeline errors."""

    async def _main():
        pipeline = AnalysisPipeline(config)
        try:
            return await coro_factory(pipeline)
        finally:
            await pipeline.aclose()

    try:
        return asyncio.run(_main())
    except AuthenticationError as e:
        click.echo(f"Error: {e} Set GROQ_API_KEY or pass --api-key.", err=True)
        sys.exit(2)
    except (ChapterLensError, httpx.TransportError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _strip_option(fn):
    return click.option(
        "--strip-boilerplate/--no-strip-boilerplate",
        default=True,
        help="Remove Project Gutenberg license header/footer first.",
    )(fn)


@click.group()
@click.version_option(version=__version__, prog_name="chapterlens")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to chapterlens.toml configuration file.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """chapterlens: chapter-by-chapter literary analysis with an LLM."""
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"Config error: {e}", err=True)
        sys.exit(1)
    logging.basicConfig(
        level=getattr(logging, config.logging.level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj["config"] = config


@cli.command()
@click.argument("book", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_strip_option
def chapters(book: Path, strip_boilerplate: bool) -> None:
    """List the chapters found in BOOK."""
    found = _load_chapters(book, strip_boilerplate)
    _echo_json([
        {
            "index": i,
            "title": ch.title,
            "length": len(ch.content),
            "preview": chapter_preview(ch.content, 120),
        }
        for i, ch in enumerate(found)
    ])


@cli.command()
@click.argument("book", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--kind", "-k", type=_KIND_CHOICE, required=True, help="Analysis to run.")
@click.option("--chapter", "-c", "chapter_index", type=int, default=0, help="Chapter index.")
@click.option("--all", "all_chapters", is_flag=True, help="Analyze every chapter in order.")
@click.option("--model", "-m", default=None, help="Override the analysis model.")
@click.option("--api-key", envvar="GROQ_API_KEY", default=None, help="API key.")
@_strip_option
@click.pass_context
def analyze(
    ctx: click.Context,
    book: Path,
    kind: str,
    chapter_index: int,
    all_chapters: bool,
    model: str | None,
    api_key: str | None,
    strip_boilerplate: bool,
) -> None:
    """Run an analysis on one chapter (or all chapters) of BOOK."""
    config: Config = ctx.obj["config"]
    found = _load_chapters(book, strip_boilerplate)

    if all_chapters:
        def progress(index: int, total: int) -> None:
            click.echo(f"[{index + 1}/{total}] {found[index].title}", err=True)

        results = _run_pipeline(config, lambda p: p.analyze_all(
            found, kind, api_key, model, on_progress=progress,
        ))
        _echo_json([
            {
                "index": i,
                "title": found[i].title,
                "parsed": not isinstance(r, UnparsedResult),
                "result": r.to_payload(),
            }
            for i, r in sorted(results.items())
        ])
        return

    if not 0 <= chapter_index < len(found):
        click.echo(
            f"Error: chapter {chapter_index} out of range (0-{len(found) - 1})", err=True,
        )
        sys.exit(1)
    target = found[chapter_index]
    result = _run_pipeline(
        config, lambda p: p.analyze(target.content, kind, api_key, model),
    )
    _echo_json({
        "index": chapter_index,
        "title": target.title,
        "parsed": not isinstance(result, UnparsedResult),
        "result": result.to_payload(),
    })


@cli.command()
@click.argument("book", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--api-key", envvar="GROQ_API_KEY", default=None, help="API key.")
@click.pass_context
def language(ctx: click.Context, book: Path, api_key: str | None) -> None:
    """Detect the language of BOOK with the small model."""
    config: Config = ctx.obj["config"]
    raw = book.read_text(encoding="utf-8", errors="replace")
    metadata = extract_basic_metadata(raw)
    text = strip_gutenberg_boilerplate(raw)
    detection = _run_pipeline(config, lambda p: p.detect_language(text, api_key))
    _echo_json({**detection.to_dict(), "declared_language": metadata.language})


@cli.command()
@click.argument("book", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--kind", "-k", type=_KIND_CHOICE, required=True)
@_strip_option
@click.pass_context
def estimate(ctx: click.Context, book: Path, kind: str, strip_boilerplate: bool) -> None:
    """Show per-chapter token estimates and prompt sizes without calling the API."""
    config: Config = ctx.obj["config"]
    found = _load_chapters(book, strip_boilerplate)
    pipeline = AnalysisPipeline(config)
    try:
        rows = []
        for i, ch in enumerate(found):
            plan = plan_compression(len(ch.content))
            params = pipeline.prepare_params(ch.content, kind)
            compressed = truncate_for_analysis(
                ch.content, kind, config.compression.max_chapter_chars,
            )
            rows.append({
                "index": i,
                "title": ch.title,
                "chars": len(ch.content),
                "estimated_tokens": plan.estimated_tokens,
                "compression_level": plan.compression_level,
                "compressed_chars": len(compressed),
                "request_tokens": estimate_tokens(params.prompt_chars),
            })
    finally:
        asyncio.run(pipeline.aclose())
    _echo_json(rows)


@cli.command()
@click.pass_context
def limits(ctx: click.Context) -> None:
    """Show local rate-limit usage (needs [rate_limit] state_path to persist)."""
    config: Config = ctx.obj["config"]
    pipeline = AnalysisPipeline(config)
    try:
        info = pipeline.rate_limits().to_dict()
        info["time_to_wait_ms"] = pipeline.gate.time_to_wait(pipeline.endpoint)
    finally:
        asyncio.run(pipeline.aclose())
    _echo_json({"endpoint": pipeline.endpoint, **info})


@cli.command()
@click.option("--host", default=None, help="Override server host.")
@click.option("--port", default=None, type=int, help="Override server port.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the chapterlens API server."""
    config: Config = ctx.obj["config"]
    actual_host = host if host is not None else config.server.host
    actual_port = port if port is not None else config.server.port

    click.echo(f"Starting chapterlens server on {actual_host}:{actual_port}")

    import uvicorn

    from chapterlens.api.server import create_app

    try:
        app = create_app(config)
        uvicorn.run(
            app, host=actual_host, port=actual_port, log_level=config.logging.level.lower(),
        )
    except Exception as e:
        click.echo(f"Server failed to start: {e}", err=True)
        sys.exit(1)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
