"""Image decoding and bitmap-to-pixel-buffer conversion.

Samples are decoded into RGB bitmaps (with EXIF orientation applied) and then
drawn into a 32-bit alpha-skip-first (XRGB) pixel buffer, the input layout the
classifier expects. The drawing context has a bottom-left origin, so the
converter flips the CTM before drawing to keep rows top-to-bottom.
"""

from __future__ import annotations

import io
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from monkeyid.errors import AllocationError, DecodeError
from monkeyid.samples import resolve_sample_path

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

PIXEL_FORMAT_32XRGB = "32XRGB"
BYTES_PER_PIXEL = 4
ROW_ALIGNMENT = 64
SKIPPED_ALPHA = 0xFF


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Bitmap:
    """A decoded raster image, HxWx3 RGB uint8, top row first."""

    pixels: NDArray[np.uint8]

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


def decode_image(image_bytes: bytes) -> Bitmap:
    """Decode raw image bytes into an RGB bitmap.

    Raises:
        DecodeError: If Pillow cannot identify or read the data.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            rgb = ImageOps.exif_transpose(img).convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise DecodeError(f"Failed to decode image: {exc}") from exc
    return Bitmap(pixels=np.asarray(rgb, dtype=np.uint8))


def load_sample(sample_id: str, samples_dir: str | Path) -> Bitmap:
    """Load and decode a bundled sample by id."""
    path = resolve_sample_path(sample_id, samples_dir)
    logger.debug("Loading sample %s from %s", sample_id, path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise DecodeError(f"Cannot read sample '{sample_id}' from {path}: {exc}") from exc
    return decode_image(data)


# ---------------------------------------------------------------------------
# Pixel buffer
# ---------------------------------------------------------------------------


class PixelBuffer:
    """Single-plane 8-bit-per-channel XRGB buffer with a lockable base address."""

    def __init__(self, width: int, height: int, pixel_format: str, storage: NDArray[np.uint8]) -> None:
        self.width = width
        self.height = height
        self.pixel_format = pixel_format
        # (height, bytes_per_row / 4, 4): row padding lives past column `width`.
        self._storage = storage
        self._lock_count = 0

    @property
    def bytes_per_row(self) -> int:
        return int(self._storage.shape[1]) * BYTES_PER_PIXEL

    @property
    def is_locked(self) -> bool:
        return self._lock_count > 0

    def lock_base_address(self) -> None:
        self._lock_count += 1

    def unlock_base_address(self) -> None:
        if self._lock_count == 0:
            raise RuntimeError("Pixel buffer base address is not locked")
        self._lock_count -= 1

    def base_address(self) -> NDArray[np.uint8]:
        """Return the backing memory. Only valid while locked."""
        if not self.is_locked:
            raise RuntimeError("Pixel buffer base address accessed while unlocked")
        return self._storage

    @contextmanager
    def locked(self) -> Iterator[NDArray[np.uint8]]:
        """Lock the base address for the duration of the block."""
        self.lock_base_address()
        try:
            yield self.base_address()
        finally:
            self.unlock_base_address()

    def to_rgb(self) -> NDArray[np.uint8]:
        """Copy the visible pixels out as HxWx3 RGB, dropping the skipped alpha byte."""
        with self.locked() as base:
            return base[:, : self.width, 1:].copy()


def _aligned_bytes_per_row(width: int) -> int:
    row = width * BYTES_PER_PIXEL
    return -(-row // ROW_ALIGNMENT) * ROW_ALIGNMENT


def allocate_pixel_buffer(width: int, height: int, pixel_format: str = PIXEL_FORMAT_32XRGB) -> PixelBuffer:
    """Allocate a zeroed pixel buffer.

    Raises:
        AllocationError: For an unsupported format, non-positive dimensions,
            or when the backing memory cannot be obtained.
    """
    if pixel_format != PIXEL_FORMAT_32XRGB:
        raise AllocationError(f"Unsupported pixel format: {pixel_format}")
    if width <= 0 or height <= 0:
        raise AllocationError(f"Invalid pixel buffer dimensions: {width}x{height}")

    columns = _aligned_bytes_per_row(width) // BYTES_PER_PIXEL
    try:
        storage = np.zeros((height, columns, BYTES_PER_PIXEL), dtype=np.uint8)
    except MemoryError as exc:
        raise AllocationError(f"Cannot allocate {width}x{height} pixel buffer") from exc
    return PixelBuffer(width, height, pixel_format, storage)


# ---------------------------------------------------------------------------
# Drawing
# ---------------------------------------------------------------------------


class BitmapContext:
    """Drawing context over XRGB memory with a bottom-left origin.

    Device row 0 is the last row in memory. Only axis-aligned transforms are
    supported; sampling is nearest-neighbour.
    """

    def __init__(self, data: NDArray[np.uint8], width: int, height: int) -> None:
        self._pixels = data[:, :width, :]
        self.width = width
        self.height = height
        self._ctm = np.identity(3)

    @property
    def ctm(self) -> NDArray[np.float64]:
        return self._ctm.copy()

    def translate_by(self, tx: float, ty: float) -> None:
        self._ctm = self._ctm @ np.array([[1.0, 0.0, tx], [0.0, 1.0, ty], [0.0, 0.0, 1.0]])

    def scale_by(self, sx: float, sy: float) -> None:
        self._ctm = self._ctm @ np.diag([sx, sy, 1.0])

    def draw_image(self, image: Bitmap, rect: tuple[float, float, float, float]) -> None:
        """Draw `image` into `rect` (user space), with image row 0 at the rect's minimum y."""
        if self._ctm[0, 1] or self._ctm[1, 0]:
            raise ValueError("Rotated transforms are not supported")
        x, y, w, h = rect
        if w <= 0 or h <= 0:
            return

        inverse = np.linalg.inv(self._ctm)
        device_x = np.arange(self.width) + 0.5
        device_y = np.arange(self.height) + 0.5
        user_x = inverse[0, 0] * device_x + inverse[0, 2]
        user_y = inverse[1, 1] * device_y + inverse[1, 2]

        src_cols = np.floor((user_x - x) / w * image.width).astype(np.intp)
        src_rows = np.floor((user_y - y) / h * image.height).astype(np.intp)
        cols = np.nonzero((src_cols >= 0) & (src_cols < image.width))[0]
        rows = np.nonzero((src_rows >= 0) & (src_rows < image.height))[0]
        if cols.size == 0 or rows.size == 0:
            return

        memory_rows = (self.height - 1 - rows)[:, None]
        patch = image.pixels[src_rows[rows][:, None], src_cols[cols][None, :]]
        self._pixels[memory_rows, cols[None, :], 0] = SKIPPED_ALPHA
        self._pixels[memory_rows, cols[None, :], 1:] = patch


def convert(image: Bitmap) -> PixelBuffer:
    """Convert a bitmap into an XRGB pixel buffer of the same size, rows top-to-bottom.

    The buffer's base address is locked only while drawing and is always
    unlocked before returning, including when drawing fails.

    Raises:
        AllocationError: If the buffer cannot be allocated.
    """
    buffer = allocate_pixel_buffer(image.width, image.height)
    with buffer.locked() as base_address:
        context = BitmapContext(base_address, image.width, image.height)
        context.translate_by(0.0, float(image.height))
        context.scale_by(1.0, -1.0)
        context.draw_image(image, (0.0, 0.0, float(image.width), float(image.height)))
    return buffer
