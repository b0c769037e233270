"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException, Request, status

from monkeyid.api.schemas import (
    ErrorResponse,
    HealthResponse,
    PageTurnResponse,
    SamplesResponse,
    ViewerState,
)
from monkeyid.errors import NavigationError

if TYPE_CHECKING:
    from monkeyid.config import Settings
    from monkeyid.ml.inference import InferencePool
    from monkeyid.viewer import SampleViewer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_viewer(request: Request) -> SampleViewer:
    viewer: SampleViewer = request.app.state.viewer
    return viewer


def _viewer_state(viewer: SampleViewer) -> ViewerState:
    return ViewerState(
        index=viewer.current_index,
        sample=viewer.current_sample,
        label=viewer.result.label,
        confidence=viewer.result.confidence,
        confidence_text=viewer.confidence_text,
        has_previous=viewer.has_previous,
        has_next=viewer.has_next,
    )


async def predict_and_apply(viewer: SampleViewer, pool: InferencePool) -> bool:
    """Predict the current sample on the inference thread, then update state here."""
    sample_id = viewer.current_sample
    result = await pool.run(viewer.predict, sample_id)
    if sample_id != viewer.current_sample:
        logger.debug("Discarding prediction for %s, viewer moved to %s", sample_id, viewer.current_sample)
        return False
    return viewer.apply(result)


@router.get(
    "/samples",
    response_model=SamplesResponse,
    summary="List bundled samples",
)
async def list_samples(request: Request) -> SamplesResponse:
    """Return the sample identifiers in viewing order."""
    viewer = _get_viewer(request)
    return SamplesResponse(samples=list(viewer.sample_ids))


@router.get(
    "/viewer",
    response_model=ViewerState,
    summary="Current viewer state",
)
async def get_viewer(request: Request) -> ViewerState:
    """Return the current sample and its displayed prediction."""
    return _viewer_state(_get_viewer(request))


@router.post(
    "/viewer/previous",
    response_model=PageTurnResponse,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorResponse}},
    summary="Show the previous sample",
)
async def previous_sample(request: Request) -> PageTurnResponse:
    """Move back one sample and classify it."""
    viewer = _get_viewer(request)
    try:
        viewer.go_previous()
    except NavigationError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    updated = await predict_and_apply(viewer, _get_inference_pool(request))
    return PageTurnResponse(updated=updated, state=_viewer_state(viewer))


@router.post(
    "/viewer/next",
    response_model=PageTurnResponse,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorResponse}},
    summary="Show the next sample",
)
async def next_sample(request: Request) -> PageTurnResponse:
    """Move forward one sample and classify it."""
    viewer = _get_viewer(request)
    try:
        viewer.go_next()
    except NavigationError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    updated = await predict_and_apply(viewer, _get_inference_pool(request))
    return PageTurnResponse(updated=updated, state=_viewer_state(viewer))


@router.post(
    "/viewer/predict",
    response_model=PageTurnResponse,
    summary="Classify the current sample again",
)
async def predict_current(request: Request) -> PageTurnResponse:
    """Re-run the classifier on the current sample."""
    viewer = _get_viewer(request)
    updated = await predict_and_apply(viewer, _get_inference_pool(request))
    return PageTurnResponse(updated=updated, state=_viewer_state(viewer))


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    viewer = _get_viewer(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        classifier_loaded=viewer.classifier_available,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )
