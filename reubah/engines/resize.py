"""
Resize Engine

Computes target geometry for a resize mode and resamples the buffer:

- fit:     scale to fit entirely inside the requested box, aspect preserved
- fill:    resample the centered source region that covers the box, exactly the box
- stretch: scale each axis independently to the exact request

Resampling always uses the same kernel so output is deterministic for a
given input and ResizeSpec.
"""

from enum import Enum
from typing import NamedTuple, Optional, Tuple

from PIL import Image
from pydantic import BaseModel

from reubah.core.config import settings
from reubah.core.exceptions import (
    InvalidFormatError,
    InvalidSizeError,
    ResizeFailedError,
)
from reubah.core.logging import get_logger
from reubah.engines.buffer import PixelBuffer

logger = get_logger(__name__)

# Lanczos-equivalent kernel, fixed for every call
RESAMPLING_FILTER = Image.Resampling.LANCZOS


class ResizeMode(str, Enum):
    """How the source aspect ratio is treated."""
    FIT = "fit"
    FILL = "fill"
    STRETCH = "stretch"


_MODE_ALIASES = {
    "fit": ResizeMode.FIT,
    "aspect": ResizeMode.FIT,
    "aspectfit": ResizeMode.FIT,
    "fill": ResizeMode.FILL,
    "cover": ResizeMode.FILL,
    "stretch": ResizeMode.STRETCH,
    "exact": ResizeMode.STRETCH,
}


def parse_resize_mode(mode: Optional[str]) -> ResizeMode:
    """Parse a user-supplied mode name, falling back to the configured default when empty."""
    if not mode:
        mode = settings.DEFAULT_RESIZE_MODE
    try:
        return _MODE_ALIASES[mode.strip().lower()]
    except KeyError:
        raise InvalidFormatError(f"invalid resize mode: {mode}", stage="resize") from None


class ResizeSpec(BaseModel):
    """Requested box. A zero dimension means unconstrained."""
    width: int = 0
    height: int = 0
    mode: ResizeMode = ResizeMode.FIT

    @property
    def is_noop(self) -> bool:
        return self.width == 0 and self.height == 0


class ResizeGeometry(NamedTuple):
    """
    Output size plus the optional source region resampled into it.

    The box is in source pixel coordinates and may be fractional; fill uses
    it to crop and scale in a single resample so no oversized intermediate
    image is ever built.
    """
    width: int
    height: int
    box: Optional[Tuple[float, float, float, float]] = None

    @property
    def output_size(self) -> Tuple[int, int]:
        return self.width, self.height


# =============================================================================
# Geometry
# =============================================================================

def _derive_missing(src_w: int, src_h: int, width: int, height: int) -> Tuple[int, int]:
    """Fill in the one unconstrained axis from the source aspect ratio."""
    if width == 0:
        width = int(src_w * height / src_h)
    elif height == 0:
        height = int(src_h * width / src_w)
    # Very thin sources can truncate to zero
    return max(width, 1), max(height, 1)


def _aspect_fit(src_w: int, src_h: int, spec: ResizeSpec) -> ResizeGeometry:
    if spec.width == 0 or spec.height == 0:
        return ResizeGeometry(*_derive_missing(src_w, src_h, spec.width, spec.height))

    width_ratio = spec.width / src_w
    height_ratio = spec.height / src_h

    # The constrained axis keeps the requested value exactly
    if width_ratio < height_ratio:
        width, height = spec.width, int(src_h * width_ratio)
    else:
        width, height = int(src_w * height_ratio), spec.height
    return ResizeGeometry(max(width, 1), max(height, 1))


def _fill(src_w: int, src_h: int, spec: ResizeSpec) -> ResizeGeometry:
    if spec.width == 0 or spec.height == 0:
        return _aspect_fit(src_w, src_h, spec)

    ratio = max(spec.width / src_w, spec.height / src_h)

    # Centered region of the source that covers the box once scaled by ratio
    crop_w = min(spec.width / ratio, src_w)
    crop_h = min(spec.height / ratio, src_h)
    left = (src_w - crop_w) / 2
    top = (src_h - crop_h) / 2
    return ResizeGeometry(
        spec.width,
        spec.height,
        box=(left, top, left + crop_w, top + crop_h),
    )


def _stretch(src_w: int, src_h: int, spec: ResizeSpec) -> ResizeGeometry:
    if spec.width == 0 or spec.height == 0:
        return ResizeGeometry(*_derive_missing(src_w, src_h, spec.width, spec.height))
    return ResizeGeometry(spec.width, spec.height)


_GEOMETRY = {
    ResizeMode.FIT: _aspect_fit,
    ResizeMode.FILL: _fill,
    ResizeMode.STRETCH: _stretch,
}


def validate_dimensions(width: int, height: int):
    """Reject requests beyond the configured maximum or below zero."""
    if width > settings.MAX_IMAGE_WIDTH or height > settings.MAX_IMAGE_HEIGHT:
        raise InvalidSizeError(
            f"dimensions exceed maximum allowed size "
            f"({settings.MAX_IMAGE_WIDTH}x{settings.MAX_IMAGE_HEIGHT})",
            stage="resize",
            details={"width": width, "height": height},
        )
    if width < 0 or height < 0:
        raise InvalidSizeError(
            "dimensions cannot be negative",
            stage="resize",
            details={"width": width, "height": height},
        )


def compute_geometry(src_width: int, src_height: int, spec: ResizeSpec) -> ResizeGeometry:
    """Target geometry for a non-empty source and a non-noop spec."""
    geometry = _GEOMETRY[ResizeMode(spec.mode)](src_width, src_height, spec)

    if geometry.width > settings.MAX_IMAGE_WIDTH or geometry.height > settings.MAX_IMAGE_HEIGHT:
        raise InvalidSizeError(
            f"resized dimensions {geometry.width}x{geometry.height} exceed maximum allowed size",
            stage="resize",
        )
    return geometry


# =============================================================================
# Resize
# =============================================================================

def resize(buffer: Optional[PixelBuffer], spec: ResizeSpec) -> PixelBuffer:
    """
    Resize a buffer to the requested box and mode.

    Returns the input buffer itself when neither dimension is requested.

    Raises:
        InvalidFormatError: missing or zero-area input
        InvalidSizeError: negative or oversized request
        ResizeFailedError: the resampler failed
    """
    if buffer is None or buffer.is_empty:
        raise InvalidFormatError("input image is empty", stage="resize")

    validate_dimensions(spec.width, spec.height)

    if spec.is_noop:
        return buffer

    geometry = compute_geometry(buffer.width, buffer.height, spec)

    logger.debug(
        "resize_geometry",
        mode=ResizeMode(spec.mode).value,
        source=buffer.size,
        output=geometry.output_size,
        box=geometry.box,
    )

    try:
        image = buffer.to_image()
        if geometry.box is not None or image.size != geometry.output_size:
            image = image.resize(geometry.output_size, RESAMPLING_FILTER, box=geometry.box)
        return PixelBuffer.from_image(image)
    except (ValueError, OSError, MemoryError) as e:
        raise ResizeFailedError(f"failed to resize image: {e}", stage="resize", cause=e) from e
