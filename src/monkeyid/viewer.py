"""Sample viewer: the paged "previous / next" state over the bundled samples.

The viewer owns the current index and the displayed result. Prediction runs
synchronously and returns a value; `apply` is what changes the displayed
state, so the caller decides which execution context performs the update.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from monkeyid.errors import AllocationError, DecodeError, InferenceError, NavigationError
from monkeyid.ml.image_classifier import ClassificationResult, classify
from monkeyid.ml.preprocessing import convert, load_sample
from monkeyid.samples import SAMPLE_IDS

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from monkeyid.ml.image_classifier import ImageClassifier

logger = logging.getLogger(__name__)

EMPTY_RESULT = ClassificationResult(label="", confidence=0.0)


class SampleViewer:
    """Pages through a fixed sequence of samples and holds the top prediction."""

    def __init__(
        self,
        samples_dir: str | Path,
        classifier: ImageClassifier | None,
        sample_ids: Sequence[str] = SAMPLE_IDS,
    ) -> None:
        if not sample_ids:
            raise ValueError("At least one sample is required")
        self._samples_dir = samples_dir
        self._classifier = classifier
        self._sample_ids = tuple(sample_ids)
        self._index = 0
        self._result = EMPTY_RESULT

    @property
    def sample_ids(self) -> tuple[str, ...]:
        return self._sample_ids

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_sample(self) -> str:
        return self._sample_ids[self._index]

    @property
    def result(self) -> ClassificationResult:
        return self._result

    @property
    def classifier_available(self) -> bool:
        return self._classifier is not None

    @property
    def has_previous(self) -> bool:
        return self._index != 0

    @property
    def has_next(self) -> bool:
        return self._index < len(self._sample_ids) - 1

    @property
    def confidence_text(self) -> str:
        return f"Confianza: {self._result.confidence * 100:.2f}%"

    def go_previous(self) -> str:
        """Move to the previous sample and return its id."""
        if not self.has_previous:
            raise NavigationError("Already at the first sample")
        self._index -= 1
        return self.current_sample

    def go_next(self) -> str:
        """Move to the next sample and return its id."""
        if not self.has_next:
            raise NavigationError("Already at the last sample")
        self._index += 1
        return self.current_sample

    def predict(self, sample_id: str) -> ClassificationResult | None:
        """Classify one sample. Returns None (and logs why) on any failure."""
        if self._classifier is None:
            logger.warning("Classifier unavailable, skipping prediction for %s", sample_id)
            return None

        try:
            image = load_sample(sample_id, self._samples_dir)
        except DecodeError as exc:
            logger.error("Failed to load image: %s", exc)
            return None

        try:
            buffer = convert(image)
        except AllocationError as exc:
            logger.error("Failed to create pixel buffer: %s", exc)
            return None

        try:
            return classify(self._classifier, buffer)
        except InferenceError as exc:
            logger.error("Prediction error: %s", exc)
            return None

    def predict_current(self) -> ClassificationResult | None:
        return self.predict(self.current_sample)

    def apply(self, result: ClassificationResult | None) -> bool:
        """Display a prediction. A None result leaves the previous one in place."""
        if result is None:
            return False
        self._result = result
        logger.info("Prediction: %s (%s)", result.label, result.confidence)
        return True

    def refresh(self) -> bool:
        """Predict the current sample and display the result in one step."""
        return self.apply(self.predict_current())
