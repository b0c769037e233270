"""Tests for the MonkeyID HTTP API."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING
from unittest.mock import patch

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from pathlib import Path

    from conftest import FakeClassifier

import httpx
import pytest
from fastapi import FastAPI, status

from monkeyid.config import get_settings
from monkeyid.main import create_app
from monkeyid.ml.inference import InferencePool
from monkeyid.samples import SAMPLE_IDS
from monkeyid.viewer import SampleViewer


def _init_app_state(app: FastAPI, samples_dir: Path, classifier: FakeClassifier | None, **env: str) -> None:
    """Manually initialize app state (ASGITransport does not trigger lifespan)."""
    with patch.dict(os.environ, env):
        settings = get_settings()
    app.state.settings = settings
    app.state.inference_pool = InferencePool()
    app.state.viewer = SampleViewer(samples_dir, classifier)


async def _make_client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        yield ac
    pool: InferencePool = app.state.inference_pool
    pool.shutdown()


@pytest.fixture()
def classifier(make_classifier: Callable[..., FakeClassifier]) -> FakeClassifier:
    return make_classifier()


@pytest.fixture()
def app(samples_dir: Path, classifier: FakeClassifier) -> FastAPI:
    """Create a fresh app instance with a fake classifier."""
    application = create_app()
    _init_app_state(application, samples_dir, classifier)
    return application


@pytest.fixture()
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    """Async HTTP client for testing the app."""
    async for ac in _make_client(app):
        yield ac


class TestHealthEndpoint:
    async def test_health_returns_ok(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/health")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "ok"
        assert data["gpu"] is False
        assert data["classifier_loaded"] is True
        assert isinstance(data["concurrent_requests"], int)
        assert isinstance(data["queue_depth"], int)

    async def test_health_gpu_true_when_cuda(self, samples_dir: Path, classifier: FakeClassifier) -> None:
        cuda_app = create_app()
        _init_app_state(cuda_app, samples_dir, classifier, MONKEYID_DEVICE="cuda")
        async for ac in _make_client(cuda_app):
            response = await ac.get("/api/v1/health")
            assert response.status_code == status.HTTP_200_OK
            assert response.json()["gpu"] is True

    async def test_health_reports_missing_classifier(self, samples_dir: Path) -> None:
        bare_app = create_app()
        _init_app_state(bare_app, samples_dir, None)
        async for ac in _make_client(bare_app):
            response = await ac.get("/api/v1/health")
            assert response.json()["classifier_loaded"] is False


class TestSamplesEndpoint:
    async def test_lists_samples_in_order(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/samples")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["samples"] == list(SAMPLE_IDS)


class TestViewerEndpoints:
    async def test_initial_state(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/viewer")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["index"] == 0
        assert data["sample"] == "n101"
        assert data["label"] == ""
        assert data["confidence"] == 0.0
        assert data["has_previous"] is False
        assert data["has_next"] is True

    async def test_next_classifies_new_sample(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/api/v1/viewer/next")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["updated"] is True
        assert data["state"]["index"] == 1
        assert data["state"]["sample"] == "n001"
        assert data["state"]["label"] == "Patas Monkey"
        assert data["state"]["confidence"] == pytest.approx(0.9)
        assert data["state"]["confidence_text"] == "Confianza: 90.00%"

    async def test_previous_returns_to_first(self, client: httpx.AsyncClient) -> None:
        await client.post("/api/v1/viewer/next")
        response = await client.post("/api/v1/viewer/previous")
        data = response.json()
        assert data["state"]["index"] == 0
        assert data["state"]["label"] == "Mantled Howler"

    async def test_previous_at_first_is_conflict(
        self, client: httpx.AsyncClient, classifier: FakeClassifier
    ) -> None:
        response = await client.post("/api/v1/viewer/previous")
        assert response.status_code == status.HTTP_409_CONFLICT
        assert "first" in response.json()["detail"]
        assert classifier.calls == 0

    async def test_next_at_last_is_conflict(self, client: httpx.AsyncClient, classifier: FakeClassifier) -> None:
        for _ in range(len(SAMPLE_IDS) - 1):
            response = await client.post("/api/v1/viewer/next")
            assert response.status_code == status.HTTP_200_OK
        calls = classifier.calls

        response = await client.post("/api/v1/viewer/next")
        assert response.status_code == status.HTTP_409_CONFLICT
        assert classifier.calls == calls

    async def test_predict_current(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/api/v1/viewer/predict")
        data = response.json()
        assert data["updated"] is True
        assert data["state"]["label"] == "Mantled Howler"

    async def test_failed_prediction_keeps_previous_result(
        self, samples_dir: Path, make_classifier: Callable[..., FakeClassifier]
    ) -> None:
        empty_app = create_app()
        _init_app_state(empty_app, samples_dir, make_classifier({}))
        async for ac in _make_client(empty_app):
            response = await ac.post("/api/v1/viewer/next")
            data = response.json()
            assert response.status_code == status.HTTP_200_OK
            assert data["updated"] is False
            assert data["state"]["index"] == 1
            assert data["state"]["label"] == ""

    @pytest.mark.parametrize("predictions", [{"a": 3.7, "b": -1.2}, {"a": float("nan"), "b": 0.5}])
    async def test_invalid_confidence_keeps_api_serving(
        self,
        samples_dir: Path,
        make_classifier: Callable[..., FakeClassifier],
        predictions: dict[str, float],
    ) -> None:
        bad_app = create_app()
        _init_app_state(bad_app, samples_dir, make_classifier(predictions))
        async for ac in _make_client(bad_app):
            response = await ac.post("/api/v1/viewer/next")
            assert response.status_code == status.HTTP_200_OK
            assert response.json()["updated"] is False

            response = await ac.get("/api/v1/viewer")
            assert response.status_code == status.HTTP_200_OK
            assert response.json()["confidence"] == 0.0


class TestLifespan:
    async def test_startup_without_model_keeps_viewer_usable(self, samples_dir: Path, tmp_path: Path) -> None:
        app = create_app()
        env = {
            "MONKEYID_MODEL_PATH": str(tmp_path / "missing.onnx"),
            "MONKEYID_SAMPLES_DIR": str(samples_dir),
        }
        with patch.dict(os.environ, env):
            async with app.router.lifespan_context(app):
                viewer: SampleViewer = app.state.viewer
                assert viewer.classifier_available is False
                assert viewer.result.label == ""

    async def test_startup_predicts_first_sample(
        self, samples_dir: Path, make_classifier: Callable[..., FakeClassifier]
    ) -> None:
        app = create_app()
        with (
            patch.dict(os.environ, {"MONKEYID_SAMPLES_DIR": str(samples_dir)}),
            patch("monkeyid.main.load_classifier", return_value=make_classifier()),
        ):
            async with app.router.lifespan_context(app):
                viewer: SampleViewer = app.state.viewer
                assert viewer.result.label == "Mantled Howler"
