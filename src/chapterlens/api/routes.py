"""API route handlers for chapterlens."""

from __future__ import annotations

import httpx
from fastapi import APIRouter, Header, HTTPException, Request

from chapterlens import __version__
from chapterlens.api.schemas import (
    AnalyzeRequest,
    AnalyzeResponse,
    ChapterResponse,
    ChaptersRequest,
    ChaptersResponse,
    HealthResponse,
    LanguageRequest,
    LanguageResponse,
    RateLimitsResponse,
    WindowUsageResponse,
)
from chapterlens.exceptions import (
    AuthenticationError,
    ChapterLensError,
    MaxRetriesError,
    ModelError,
    PreconditionError,
    RateLimitExceededError,
    ThrottledError,
)
from chapterlens.models.results import UnparsedResult
from chapterlens.pipeline import AnalysisPipeline
from chapterlens.text.chapters import chapter_preview, segment_chapters
from chapterlens.text.gutenberg import strip_gutenberg_boilerplate

router = APIRouter()


def _get_pipeline(request: Request) -> AnalysisPipeline:
    """Get the pipeline from the app state."""
    return request.app.state.pipeline


def _http_error(error: Exception) -> HTTPException:
    """Map the pipeline's error taxonomy onto HTTP statuses."""
    if isinstance(error, PreconditionError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, AuthenticationError):
        return HTTPException(status_code=401, detail=str(error))
    if isinstance(error, (ThrottledError, MaxRetriesError, RateLimitExceededError)):
        return HTTPException(status_code=429, detail=str(error))
    if isinstance(error, ModelError):
        return HTTPException(status_code=502, detail=str(error))
    if isinstance(error, httpx.TransportError):
        return HTTPException(status_code=503, detail=f"Model endpoint unreachable: {error}")
    return HTTPException(status_code=500, detail=str(error))


@router.post("/chapters", response_model=ChaptersResponse)
async def split_chapters(body: ChaptersRequest, include_content: bool = False):
    """Segment a book into chapters."""
    text = strip_gutenberg_boilerplate(body.text) if body.strip_boilerplate else body.text
    chapters = segment_chapters(text)
    return ChaptersResponse(
        count=len(chapters),
        chapters=[
            ChapterResponse(
                index=i,
                title=ch.title,
                length=len(ch.content),
                preview=chapter_preview(ch.content),
                content=ch.content if include_content else None,
            )
            for i, ch in enumerate(chapters)
        ],
    )


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze(
    request: Request,
    body: AnalyzeRequest,
    x_api_key: str | None = Header(default=None),
):
    """Run one analysis on a chapter's text."""
    pipeline = _get_pipeline(request)
    try:
        result = await pipeline.analyze(body.text, body.kind, x_api_key, body.model)
    except (ChapterLensError, httpx.TransportError) as e:
        raise _http_error(e) from e
    return AnalyzeResponse(
        kind=result.kind.value,
        parsed=not isinstance(result, UnparsedResult),
        result=result.to_payload(),
    )


@router.post("/language", response_model=LanguageResponse)
async def detect_language(
    request: Request,
    body: LanguageRequest,
    x_api_key: str | None = Header(default=None),
):
    """Detect the language of a book."""
    pipeline = _get_pipeline(request)
    try:
        detection = await pipeline.detect_language(body.text, x_api_key)
    except (ChapterLensError, httpx.TransportError) as e:
        raise _http_error(e) from e
    return LanguageResponse(**detection.to_dict())


@router.get("/rate-limits", response_model=RateLimitsResponse)
async def rate_limits(request: Request):
    """Current usage of the local rate-limit windows."""
    pipeline = _get_pipeline(request)
    info = pipeline.rate_limits()
    return RateLimitsResponse(
        endpoint=pipeline.endpoint,
        minute_limit=WindowUsageResponse(**info.minute.to_dict()),
        hour_limit=WindowUsageResponse(**info.hour.to_dict()),
        day_limit=WindowUsageResponse(**info.day.to_dict()),
        time_to_wait_ms=pipeline.gate.time_to_wait(pipeline.endpoint),
    )


@router.get("/health", response_model=HealthResponse)
async def health():
    """System health check."""
    return HealthResponse(status="ok", version=__version__)
