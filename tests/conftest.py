"""Shared fixtures: bundled sample images and a deterministic fake classifier."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pytest
from PIL import Image

from monkeyid.samples import SAMPLE_IDS

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from pathlib import Path

    from monkeyid.ml.preprocessing import PixelBuffer

MONKEY_LABELS: tuple[str, ...] = (
    "mantled_howler",
    "patas_monkey",
    "bald_uakari",
    "japanese_macaque",
    "pygmy_marmoset",
    "white_headed_capuchin",
    "silvery_marmoset",
    "common_squirrel_monkey",
    "black_headed_night_monkey",
    "nilgiri_langur",
)

RED_STEP = 20


class FakeClassifier:
    """Deterministic classifier keyed on the top-left pixel's red channel.

    Sample ``i`` is a solid image with red ``i * RED_STEP``, so it is
    classified as ``MONKEY_LABELS[i]`` with confidence 0.9.
    """

    model_name = "fake"
    labels = MONKEY_LABELS

    def __init__(self, predictions: Mapping[str, float] | None = None) -> None:
        self._predictions = predictions
        self.calls = 0

    def predict(self, buffer: PixelBuffer) -> dict[str, float]:
        self.calls += 1
        if self._predictions is not None:
            return dict(self._predictions)
        red = int(buffer.to_rgb()[0, 0, 0])
        winner = (red // RED_STEP) % len(MONKEY_LABELS)
        return {label: (0.9 if i == winner else 0.01) for i, label in enumerate(MONKEY_LABELS)}


def write_sample(path: Path, red: int, width: int = 6, height: int = 4) -> None:
    pixels = np.zeros((height, width, 3), dtype=np.uint8)
    pixels[..., 0] = red
    pixels[..., 1] = np.arange(height, dtype=np.uint8)[:, None] * 10
    Image.fromarray(pixels).save(path)


@pytest.fixture()
def samples_dir(tmp_path: Path) -> Path:
    """A bundle directory with one PNG per sample id."""
    bundle = tmp_path / "samples"
    bundle.mkdir()
    for i, sample_id in enumerate(SAMPLE_IDS):
        write_sample(bundle / f"{sample_id}.png", red=i * RED_STEP)
    return bundle


@pytest.fixture()
def make_classifier() -> Callable[..., FakeClassifier]:
    return FakeClassifier
