"""
PixelBuffer - the decoded raster every stage hands to the next.

A buffer owns a contiguous row-major uint8 array of shape
(height, width, channels). Stages never mutate the buffer they receive;
they build a new one.
"""

from enum import Enum
from typing import Optional

import numpy as np
from PIL import Image

from reubah.core.config import settings
from reubah.core.exceptions import InvalidFormatError, InvalidSizeError


class PixelFormat(str, Enum):
    """Sample layouts a buffer can carry."""
    RGBA8 = "RGBA8"
    RGB8 = "RGB8"

    @property
    def channels(self) -> int:
        return 4 if self is PixelFormat.RGBA8 else 3


class PixelBuffer:
    """An owned, in-memory decoded raster image."""

    __slots__ = ("width", "height", "pixel_format", "_samples")

    def __init__(
        self,
        width: int,
        height: int,
        samples: np.ndarray,
        pixel_format: PixelFormat = PixelFormat.RGBA8,
        max_width: Optional[int] = None,
        max_height: Optional[int] = None,
    ):
        max_width = max_width or settings.MAX_IMAGE_WIDTH
        max_height = max_height or settings.MAX_IMAGE_HEIGHT

        if width < 0 or height < 0:
            raise InvalidSizeError(f"dimensions cannot be negative ({width}x{height})")
        if width > max_width or height > max_height:
            raise InvalidSizeError(
                f"dimensions {width}x{height} exceed maximum allowed size ({max_width}x{max_height})"
            )

        expected = width * height * pixel_format.channels
        if samples.dtype != np.uint8 or samples.size != expected:
            raise InvalidFormatError(
                f"sample buffer holds {samples.size} values, expected {expected} "
                f"for {width}x{height} {pixel_format.value}"
            )

        self.width = width
        self.height = height
        self.pixel_format = pixel_format
        self._samples = np.ascontiguousarray(
            samples.reshape(height, width, pixel_format.channels)
        )
        self._samples.setflags(write=False)

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelBuffer":
        """Build from an (H, W, 3|4) uint8 array."""
        if array.ndim != 3 or array.shape[2] not in (3, 4):
            raise InvalidFormatError(f"unsupported sample array shape {array.shape}")
        pixel_format = PixelFormat.RGBA8 if array.shape[2] == 4 else PixelFormat.RGB8
        return cls(array.shape[1], array.shape[0], array, pixel_format)

    @classmethod
    def from_image(cls, image: Image.Image) -> "PixelBuffer":
        """Build a canonical RGBA8 buffer from any PIL image."""
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return cls.from_array(np.asarray(image, dtype=np.uint8))

    @classmethod
    def blank(cls, width: int, height: int, color=(0, 0, 0, 0)) -> "PixelBuffer":
        samples = np.empty((height, width, 4), dtype=np.uint8)
        samples[:, :] = color
        return cls(width, height, samples)

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    @property
    def channels(self) -> int:
        return self.pixel_format.channels

    @property
    def size(self):
        return self.width, self.height

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    @property
    def samples(self) -> np.ndarray:
        """Read-only (H, W, C) view of the samples."""
        return self._samples

    def tobytes(self) -> bytes:
        return self._samples.tobytes()

    def to_image(self) -> Image.Image:
        return Image.fromarray(self._samples)

    def to_rgba(self) -> "PixelBuffer":
        if self.pixel_format is PixelFormat.RGBA8:
            return self
        alpha = np.full((self.height, self.width, 1), 255, dtype=np.uint8)
        return PixelBuffer.from_array(np.concatenate([self._samples, alpha], axis=2))

    def has_transparency(self) -> bool:
        if self.pixel_format is not PixelFormat.RGBA8 or self.is_empty:
            return False
        return bool((self._samples[:, :, 3] < 255).any())

    def pixel(self, x: int, y: int):
        return tuple(int(v) for v in self._samples[y, x])

    def __eq__(self, other) -> bool:
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return (
            self.size == other.size
            and self.pixel_format == other.pixel_format
            and np.array_equal(self._samples, other._samples)
        )

    def __repr__(self) -> str:
        return f"PixelBuffer({self.width}x{self.height}, {self.pixel_format.value})"
