"""Classifier construction from the bundled ONNX model artifact.

The classifier is built once at process start. A failure is logged and leaves
the classifier unavailable for the rest of the process; there is no retry.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from monkeyid.errors import InferenceError
from monkeyid.ml.image_classifier import OnnxImageClassifier

if TYPE_CHECKING:
    from monkeyid.config import Settings
    from monkeyid.ml.image_classifier import ImageClassifier

logger = logging.getLogger(__name__)


def read_labels(labels_path: str | Path) -> list[str]:
    """Read one label per line, skipping blank lines."""
    path = Path(labels_path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise InferenceError(f"Cannot read labels file {path}: {exc}") from exc
    return [line.strip() for line in text.splitlines() if line.strip()]


def build_providers(settings: Settings) -> list[str | tuple[str, dict[str, object]]]:
    device = settings.device
    if device == "cuda":
        return [
            (
                "CUDAExecutionProvider",
                {
                    "device_id": 0,
                    "gpu_mem_limit": settings.gpu_mem_limit,
                    "arena_extend_strategy": "kSameAsRequested",
                },
            ),
            "CPUExecutionProvider",
        ]
    if device == "openvino":
        return [
            ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
            "CPUExecutionProvider",
        ]
    return ["CPUExecutionProvider"]


def build_session_options(settings: Settings) -> SessionOptions:
    opts = SessionOptions()
    opts.intra_op_num_threads = settings.intra_op_threads
    opts.inter_op_num_threads = settings.inter_op_threads
    opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
    opts.enable_mem_pattern = True
    opts.enable_mem_reuse = True

    if settings.device == "openvino":
        # OpenVINO does its own graph optimization
        from onnxruntime import GraphOptimizationLevel

        opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
    return opts


def create_classifier(settings: Settings) -> OnnxImageClassifier:
    """Build the ONNX classifier, raising on any failure.

    Raises:
        InferenceError: If the model or labels file is missing or cannot be loaded.
    """
    model_path = Path(settings.model_path)
    if not model_path.is_file():
        raise InferenceError(f"Model file not found: {model_path}")

    labels = read_labels(settings.labels_path)
    try:
        session = InferenceSession(
            str(model_path),
            sess_options=build_session_options(settings),
            providers=build_providers(settings),
        )
    except Exception as exc:
        raise InferenceError(f"Cannot load model {model_path}: {exc}") from exc

    classifier = OnnxImageClassifier(session, labels, model_name=model_path.stem)
    logger.info("Loaded classifier %s with %d labels", classifier.model_name, len(labels))
    return classifier


def load_classifier(settings: Settings) -> ImageClassifier | None:
    """Build the process-wide classifier, or return None if construction fails."""
    try:
        return create_classifier(settings)
    except InferenceError as exc:
        logger.error("Model initialization error: %s", exc)
        return None
