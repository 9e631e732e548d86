"""FastAPI application factory for the chapterlens API server."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chapterlens import __version__
from chapterlens.config import Config
from chapterlens.pipeline import AnalysisPipeline

logger = logging.getLogger("chapterlens.server")


def create_app(
    config: Config | None = None,
    pipeline: AnalysisPipeline | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Two modes:
    - Without pipeline: one is built from config in the lifespan (production)
    - With pipeline: used as-is and left open for the caller (testing)
    """
    resolved_config = config or (pipeline.config if pipeline else Config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if pipeline is not None:
            yield
            return
        owned = AnalysisPipeline(resolved_config)
        app.state.pipeline = owned
        logger.info(
            "Pipeline ready: base_url=%s large_model=%s",
            resolved_config.model.base_url, resolved_config.model.large_model,
        )
        try:
            yield
        finally:
            await owned.aclose()

    app = FastAPI(
        title="chapterlens",
        description="Chapter segmentation and LLM literary analysis",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.config = resolved_config
    if pipeline is not None:
        app.state.pipeline = pipeline

    # CORS: the reading UI runs on a local dev server
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"http://(localhost|127\.0\.0\.1)(:\d+)?",
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from chapterlens.api.routes import router

    app.include_router(router)

    return app
