"""The fixed, ordered set of bundled sample images."""

from __future__ import annotations

from pathlib import Path

from monkeyid.errors import DecodeError

SAMPLE_IDS: tuple[str, ...] = (
    "n101",
    "n001",
    "n002",
    "n004",
    "n100",
    "n000",
    "n102",
    "n700",
    "n701",
    "n703",
)

SAMPLE_EXTENSIONS: tuple[str, ...] = (".png", ".jpg", ".jpeg")


def resolve_sample_path(sample_id: str, samples_dir: str | Path) -> Path:
    """Return the bundled file for a sample id.

    Raises:
        DecodeError: If the id is not part of the bundle or no file exists for it.
    """
    if sample_id not in SAMPLE_IDS:
        raise DecodeError(f"Unknown sample: {sample_id}")

    root = Path(samples_dir)
    for ext in SAMPLE_EXTENSIONS:
        candidate = root / f"{sample_id}{ext}"
        if candidate.is_file():
            return candidate
    raise DecodeError(f"Sample '{sample_id}' not found in {root}")
