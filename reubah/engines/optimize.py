"""
Optimization Profiles

A second encode pass tuned by a coarse quality level rather than the raw
quality number. It exposes encoder settings the main conversion knob does
not (progressive JPEG, optimized entropy tables, maximum zlib effort,
slower WebP methods).

Buffers never carry EXIF/ICC metadata, so every optimized output is
metadata-free.
"""

from enum import Enum

import numpy as np
from pydantic import BaseModel, Field

from reubah.core.config import settings
from reubah.core.exceptions import OptimizationFailedError, ProcessingFailedError
from reubah.engines.buffer import PixelBuffer
from reubah.engines.codecs.options import (
    ConversionOptions,
    GIFOptions,
    ImageFormat,
    PNGOptions,
    WebPOptions,
    parse_format,
)
from reubah.engines.codecs.registry import CodecRegistry


class QualityLevel(str, Enum):
    LOW = "low"            # 60% quality
    MEDIUM = "medium"      # 75% quality
    HIGH = "high"          # 90% quality
    LOSSLESS = "lossless"  # 100% quality


LEVEL_QUALITY = {
    QualityLevel.LOW: 60,
    QualityLevel.MEDIUM: 75,
    QualityLevel.HIGH: 90,
    QualityLevel.LOSSLESS: 100,
}


def quality_level_for(quality: int) -> QualityLevel:
    """Bucket a 1-100 quality into an optimization level."""
    if quality <= 60:
        return QualityLevel.LOW
    if quality <= 75:
        return QualityLevel.MEDIUM
    if quality <= 90:
        return QualityLevel.HIGH
    return QualityLevel.LOSSLESS


class OptimizeOptions(BaseModel):
    quality: int = Field(default=85, ge=1, le=100)  # JPEG/WebP/GIF
    compression: int = Field(default=6, ge=0, le=9)  # PNG
    progressive: bool = False  # JPEG
    auto_quality: bool = False  # derive quality from image complexity


def default_options(fmt) -> OptimizeOptions:
    """Recommended optimization options per format."""
    fmt = parse_format(fmt)
    if fmt is ImageFormat.JPEG:
        return OptimizeOptions(quality=settings.DEFAULT_QUALITY, progressive=True, auto_quality=True)
    if fmt is ImageFormat.PNG:
        return OptimizeOptions(compression=9)
    if fmt is ImageFormat.WEBP:
        return OptimizeOptions(quality=settings.DEFAULT_QUALITY, auto_quality=True)
    return OptimizeOptions(quality=settings.DEFAULT_QUALITY)


def options_for_level(fmt, level: QualityLevel) -> OptimizeOptions:
    """
    Optimization options for an explicit level.

    An explicit level pins the quality, so content-based auto quality is off.
    """
    opts = default_options(fmt)
    update = {"quality": LEVEL_QUALITY[level], "auto_quality": False}
    if level in (QualityLevel.LOW, QualityLevel.LOSSLESS):
        update["compression"] = 9
    return opts.model_copy(update=update)


# =============================================================================
# Auto Quality
# =============================================================================

COMPLEXITY_SAMPLES = 100


def calculate_complexity(buffer: PixelBuffer) -> float:
    """
    Mean RGB difference between consecutive samples of a 100x100 grid,
    normalized to 0-1. Flat graphics score low, photos score high.
    """
    if buffer.is_empty:
        return 0.0

    steps = np.arange(COMPLEXITY_SAMPLES)
    xs = (steps * buffer.width) // COMPLEXITY_SAMPLES
    ys = (steps * buffer.height) // COMPLEXITY_SAMPLES

    # Column-major walk, same order the grid is sampled in
    grid = buffer.samples[np.ix_(ys, xs)][:, :, :3].astype(np.int32)
    walk = grid.transpose(1, 0, 2).reshape(-1, 3)

    diffs = np.abs(np.diff(walk, axis=0, prepend=walk[:1])).sum(axis=1)
    return float(diffs.sum() / (255 * 3) / (COMPLEXITY_SAMPLES * COMPLEXITY_SAMPLES))


def auto_adjust_quality(buffer: PixelBuffer, opts: OptimizeOptions) -> OptimizeOptions:
    complexity = calculate_complexity(buffer)
    if complexity < 0.3:
        quality = 70  # Simple images
    elif complexity < 0.6:
        quality = 80  # Medium complexity
    else:
        quality = 90  # Complex images
    return opts.model_copy(update={"quality": quality})


# =============================================================================
# Optimize
# =============================================================================

def to_conversion_options(fmt: ImageFormat, opts: OptimizeOptions, background=(255, 255, 255)) -> ConversionOptions:
    """Translate optimization settings into codec options."""
    kwargs = {
        "format": fmt,
        "quality": opts.quality,
        "progressive": opts.progressive,
        "optimize_size": True,
        "background": background,
    }
    if fmt is ImageFormat.PNG:
        kwargs["png"] = PNGOptions(compress_level=opts.compression)
    elif fmt is ImageFormat.WEBP:
        kwargs["webp"] = WebPOptions(lossless=opts.quality == 100)
    elif fmt is ImageFormat.GIF:
        kwargs["gif"] = GIFOptions()
    return ConversionOptions(**kwargs)


def optimize(
    buffer: PixelBuffer,
    fmt,
    opts: OptimizeOptions,
    registry: CodecRegistry,
    background=(255, 255, 255),
) -> bytes:
    """
    Encode the buffer under optimization settings.

    Content-based auto quality only runs when `opts.auto_quality` is set,
    which is the case for the JPEG and WebP options from `default_options`.
    Options from `options_for_level`, and therefore the pipeline's optimize
    stage via `optimize_for_quality`, pin the quality to the level instead.

    Raises:
        OptimizationFailedError: the encoder rejected the buffer
    """
    fmt = parse_format(fmt)
    if opts.auto_quality:
        opts = auto_adjust_quality(buffer, opts)

    codec = registry.create(fmt, to_conversion_options(fmt, opts, background))
    try:
        return codec.encode(buffer)
    except ProcessingFailedError as e:
        raise OptimizationFailedError(
            f"failed to optimize {fmt.value}",
            stage="optimize",
            cause=e.cause or e,
        ) from e


def optimize_for_quality(
    buffer: PixelBuffer,
    fmt,
    quality: int,
    registry: CodecRegistry,
    background=(255, 255, 255),
) -> bytes:
    """Optimize using the level bucket derived from a 1-100 quality; auto quality stays off."""
    return optimize(buffer, fmt, options_for_level(fmt, quality_level_for(quality)), registry, background)
