"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from monkeyid.api.routes import predict_and_apply, router
from monkeyid.config import get_settings
from monkeyid.ml.inference import InferencePool
from monkeyid.ml.model_loader import load_classifier
from monkeyid.viewer import SampleViewer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting MonkeyID (device=%s, model=%s, samples=%s)",
        settings.device,
        settings.model_path,
        settings.samples_dir,
    )

    inference_pool = InferencePool()
    app.state.inference_pool = inference_pool

    classifier = load_classifier(settings)
    viewer = SampleViewer(settings.samples_dir, classifier)
    app.state.viewer = viewer
    await predict_and_apply(viewer, inference_pool)

    logger.info("MonkeyID ready")
    yield

    logger.info("Shutting down MonkeyID")
    inference_pool.shutdown()
    logger.info("MonkeyID shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="MonkeyID",
        description="Top-prediction viewer for bundled monkey species samples",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the app with uvicorn using the configured host and port."""
    settings = get_settings()
    uvicorn.run("monkeyid.main:app", host=settings.host, port=settings.port)
