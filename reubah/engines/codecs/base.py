"""
Codec Interface

Every output format is one ImageCodec subclass exposing the same
capabilities: encode, decode, transparency support and a normalized
1-100 quality knob translated to the format's native control.
"""

import io
from abc import ABC, abstractmethod
from typing import Tuple

import numpy as np
from PIL import Image

from reubah.core.exceptions import ProcessingFailedError
from reubah.engines.buffer import PixelBuffer
from reubah.engines.codecs.options import (
    ConversionOptions,
    ImageFormat,
    MAX_QUALITY,
    normalize_quality,
)

# Errors PIL raises for corrupt data or encoder rejections
PIL_ERRORS = (OSError, ValueError, SyntaxError, EOFError, Image.DecompressionBombError)

WHITE = (255, 255, 255)


def flatten_alpha(buffer: PixelBuffer, background: Tuple[int, int, int] = WHITE) -> PixelBuffer:
    """
    Alpha-composite every pixel onto an opaque background.

    Fully transparent pixels become exactly the background color, fully
    opaque pixels are left untouched, partial alpha is blended.
    """
    rgba = buffer.to_rgba().samples
    if buffer.is_empty:
        return buffer.to_rgba()

    alpha = rgba[:, :, 3:4].astype(np.uint32)
    rgb = rgba[:, :, :3].astype(np.uint32)
    bg = np.asarray(background, dtype=np.uint32).reshape(1, 1, 3)

    blended = (rgb * alpha + bg * (255 - alpha) + 127) // 255

    out = np.empty_like(rgba)
    out[:, :, :3] = blended.astype(np.uint8)
    out[:, :, 3] = 255
    return PixelBuffer.from_array(out)


class ImageCodec(ABC):
    """Interface for a single image format."""

    format: ImageFormat
    pil_format: str
    supports_transparency: bool = False

    def __init__(self):
        self._quality = MAX_QUALITY
        self.background = WHITE

    # -------------------------------------------------------------------------
    # Quality
    # -------------------------------------------------------------------------

    @property
    def quality(self) -> int:
        """Current setting expressed on the normalized 1-100 scale."""
        return self._quality

    def set_quality(self, quality: int):
        self._quality = normalize_quality(quality)

    def configure(self, options: ConversionOptions):
        """Apply the shared quality knob plus this format's sub-options."""
        self.background = tuple(options.background)
        self.set_quality(options.quality)

    @property
    def content_type(self) -> str:
        return self.format.content_type

    # -------------------------------------------------------------------------
    # Encode / Decode
    # -------------------------------------------------------------------------

    @abstractmethod
    def encode(self, buffer: PixelBuffer) -> bytes:
        """Encode the buffer to this format's bytes."""
        pass

    def decode(self, data: bytes) -> PixelBuffer:
        """Decode bytes of this format into a canonical RGBA8 buffer."""
        try:
            with Image.open(io.BytesIO(data), formats=[self.pil_format]) as image:
                image.load()
                return PixelBuffer.from_image(image)
        except PIL_ERRORS as e:
            raise ProcessingFailedError(
                f"failed to decode {self.format.value} data",
                stage="decode",
                cause=e,
            ) from e

    def _save(self, image: Image.Image, **params) -> bytes:
        output = io.BytesIO()
        try:
            image.save(output, format=self.pil_format, **params)
        except PIL_ERRORS as e:
            raise ProcessingFailedError(
                f"failed to encode {self.format.value}",
                stage="encode",
                cause=e,
                details={"width": image.width, "height": image.height},
            ) from e
        return output.getvalue()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(quality={self.quality})"
