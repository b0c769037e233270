"""Classifier capability, top-prediction ranking, and the ONNX-backed classifier."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from monkeyid.errors import InferenceError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

    from monkeyid.ml.preprocessing import PixelBuffer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationResult:
    """A single classification prediction."""

    label: str
    confidence: float


class ImageClassifier(Protocol):
    """Protocol for image classification models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    def predict(self, buffer: PixelBuffer) -> Mapping[str, float]:
        """Run the model on a pixel buffer.

        Args:
            buffer: XRGB pixel buffer produced by the converter.

        Returns:
            Mapping of raw label to confidence, in model output order.
            Confidences are not required to sum to 1.
        """
        ...


def format_label(raw_label: str) -> str:
    """Turn a model label such as ``gray_langur`` into ``Gray Langur``."""
    return " ".join(word.capitalize() for word in raw_label.replace("_", " ").split(" "))


def rank_predictions(predictions: Mapping[str, float]) -> list[ClassificationResult]:
    """Return predictions ordered by confidence, highest first.

    The sort is stable, so equal confidences keep the classifier's order.
    Labels are returned as the model reports them.
    """
    ranked = sorted(predictions.items(), key=lambda item: item[1], reverse=True)
    return [ClassificationResult(label=label, confidence=float(conf)) for label, conf in ranked]


def classify(classifier: ImageClassifier, buffer: PixelBuffer) -> ClassificationResult:
    """Run the classifier once and return its top prediction with a display label.

    Raises:
        InferenceError: If the classifier raises, returns no predictions, or
            reports a non-finite or out-of-range confidence.
    """
    try:
        predictions = classifier.predict(buffer)
    except InferenceError:
        raise
    except Exception as exc:
        raise InferenceError(f"Prediction failed for {classifier.model_name}: {exc}") from exc

    if any(not math.isfinite(conf) for conf in predictions.values()):
        raise InferenceError(f"{classifier.model_name} returned a non-finite confidence")

    ranked = rank_predictions(predictions)
    if not ranked:
        raise InferenceError(f"{classifier.model_name} returned no predictions")

    top = ranked[0]
    if not 0.0 <= top.confidence <= 1.0:
        raise InferenceError(f"{classifier.model_name} confidence {top.confidence} is outside [0, 1]")
    return ClassificationResult(label=format_label(top.label), confidence=top.confidence)


class OnnxImageClassifier:
    """Image classifier backed by an ONNX Runtime session.

    The session's first input is fed the buffer's RGB channels as float32 in
    [0, 1], without resizing. The first output is read as one score per label.
    """

    def __init__(self, session: InferenceSession, labels: Sequence[str], model_name: str) -> None:
        if not labels:
            raise InferenceError(f"No labels configured for {model_name}")
        self._session = session
        self._labels = tuple(labels)
        self._model_name = model_name

        model_input = session.get_inputs()[0]
        self._input_name: str = model_input.name
        self._channels_first = _is_channels_first(model_input.shape)

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def labels(self) -> tuple[str, ...]:
        return self._labels

    def predict(self, buffer: PixelBuffer) -> dict[str, float]:
        tensor = self._to_tensor(buffer)
        try:
            outputs = self._session.run(None, {self._input_name: tensor})
        except Exception as exc:
            raise InferenceError(f"ONNX Runtime inference failed: {exc}") from exc

        scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if scores.size != len(self._labels):
            raise InferenceError(f"Model produced {scores.size} scores for {len(self._labels)} labels")
        return {label: float(score) for label, score in zip(self._labels, scores, strict=True)}

    def _to_tensor(self, buffer: PixelBuffer) -> NDArray[np.float32]:
        rgb = buffer.to_rgb().astype(np.float32) / 255.0
        if self._channels_first:
            rgb = rgb.transpose(2, 0, 1)
        return np.ascontiguousarray(rgb[np.newaxis, ...])


def _is_channels_first(shape: Sequence[object]) -> bool:
    # NCHW when the channel axis (size 3) sits right after the batch axis.
    return len(shape) == 4 and shape[1] == 3
