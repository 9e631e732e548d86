"""Pydantic request/response schemas for the chapterlens API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

# --- Request Schemas ---


class ChaptersRequest(BaseModel):
    text: str
    strip_boilerplate: bool = False


class AnalyzeRequest(BaseModel):
    text: str = Field(min_length=1)
    kind: str
    model: str | None = None


class LanguageRequest(BaseModel):
    text: str = Field(min_length=1)


# --- Response Schemas ---


class ChapterResponse(BaseModel):
    index: int
    title: str
    length: int
    preview: str
    content: str | None = None


class ChaptersResponse(BaseModel):
    count: int
    chapters: list[ChapterResponse]


class AnalyzeResponse(BaseModel):
    kind: str
    parsed: bool
    result: Any


class LanguageResponse(BaseModel):
    language: str
    confidence: float


class WindowUsageResponse(BaseModel):
    used: int
    max: int
    remaining: int


class RateLimitsResponse(BaseModel):
    endpoint: str
    minute_limit: WindowUsageResponse
    hour_limit: WindowUsageResponse
    day_limit: WindowUsageResponse
    time_to_wait_ms: int


class HealthResponse(BaseModel):
    status: str
    version: str
