"""Pydantic request/response schemas for the MonkeyID API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ViewerState(BaseModel):
    """Current page of the sample viewer and its displayed prediction."""

    index: int = Field(description="Zero-based position in the sample sequence")
    sample: str = Field(description="Identifier of the current sample")
    label: str = Field(description="Displayed label, empty until the first successful prediction")
    confidence: float = Field(ge=0.0, le=1.0)
    confidence_text: str
    has_previous: bool
    has_next: bool


class PageTurnResponse(BaseModel):
    """Result of a navigation or prediction request."""

    updated: bool = Field(description="False when the prediction failed and the previous result was kept")
    state: ViewerState


class SamplesResponse(BaseModel):
    """Ordered list of bundled sample identifiers."""

    samples: list[str]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    classifier_loaded: bool
    concurrent_requests: int
    queue_depth: int


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
