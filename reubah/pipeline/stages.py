"""
Pipeline Stage Implementations

Each stage is a separate function that can be called independently.
Every stage returns (result, metadata) and either succeeds completely or
raises; a failed stage never hands a partial result to the next one.
"""

import io
from typing import Optional, Dict, Any, Tuple
from datetime import datetime

from PIL import Image

from reubah.core.logging import get_logger, stage_var
from reubah.core.metrics import track_stage_latency
from reubah.core.exceptions import (
    ReubahError,
    InvalidFormatError,
    ProcessingFailedError,
    ResizeFailedError,
    BackgroundRemovalFailedError,
    OptimizationFailedError,
)
from reubah.engines.buffer import PixelBuffer
from reubah.engines.codecs.base import PIL_ERRORS
from reubah.engines.codecs.options import ImageFormat
from reubah.engines.codecs.registry import CodecRegistry
from reubah.engines.convert import ConversionManager, ConversionResult
from reubah.engines.ico import IcoDecoder
from reubah.engines.optimize import optimize_for_quality, quality_level_for
from reubah.engines.resize import ResizeSpec, resize
from reubah.engines.sniff import SourceFormat, validate_image_dimensions
from reubah.services.background import BackgroundRemover
from reubah.services.heic import HeicTranscoder

logger = get_logger(__name__)

# Source formats decoded by the matching codec
_CODEC_SOURCES = {
    SourceFormat.JPEG: ImageFormat.JPEG,
    SourceFormat.PNG: ImageFormat.PNG,
    SourceFormat.WEBP: ImageFormat.WEBP,
    SourceFormat.GIF: ImageFormat.GIF,
    SourceFormat.BMP: ImageFormat.BMP,
}


def _elapsed_ms(start_time: datetime) -> int:
    return int((datetime.utcnow() - start_time).total_seconds() * 1000)


def probe_dimensions(data: bytes) -> Tuple[int, int]:
    """Read width/height from the header without decoding pixels."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.size
    except PIL_ERRORS as e:
        raise InvalidFormatError("invalid image file", stage="decode", cause=e) from e


# =============================================================================
# Stage 1: Decode
# =============================================================================

def decode_stage(
    data: bytes,
    source_format: SourceFormat,
    registry: CodecRegistry,
    heic_transcoder: Optional[HeicTranscoder] = None,
    ico_decoder: Optional[IcoDecoder] = None
) -> Tuple[PixelBuffer, Dict[str, Any]]:
    """
    Decode input bytes, routing on the sniffed source format.

    ICO goes through the byte-level decoder (which re-checks the
    signature), HEIC through the transcoding collaborator, everything
    else through the matching codec.
    """
    stage_var.set("decode")
    start_time = datetime.utcnow()

    logger.info("decode_started", source_format=source_format.value, input_size=len(data))

    try:
        with track_stage_latency("decode"):
            if source_format is SourceFormat.ICO:
                buffer = (ico_decoder or IcoDecoder()).decode(data)
            elif source_format is SourceFormat.HEIC:
                buffer = (heic_transcoder or HeicTranscoder()).decode(data)
            elif source_format in _CODEC_SOURCES:
                validate_image_dimensions(*probe_dimensions(data))
                buffer = registry.create(_CODEC_SOURCES[source_format]).decode(data)
            else:
                raise InvalidFormatError(
                    f"no decoder for source format: {source_format.value}",
                    stage="decode"
                )
    except ReubahError:
        raise
    except Exception as e:
        logger.error("decode_failed", error=str(e))
        raise ProcessingFailedError(f"Decode failed: {str(e)}", stage="decode", cause=e) from e

    metadata = {
        "stage": "decode",
        "source_format": source_format.value,
        "dimensions": buffer.size,
        "duration_ms": _elapsed_ms(start_time)
    }

    logger.info("decode_completed", dimensions=buffer.size, duration_ms=metadata["duration_ms"])

    return buffer, metadata


# =============================================================================
# Stage 2: Background Removal
# =============================================================================

def background_removal_stage(
    buffer: PixelBuffer,
    remover: Optional[BackgroundRemover]
) -> Tuple[PixelBuffer, Dict[str, Any]]:
    """Replace the buffer with the collaborator's cut-out. No fallback to the original."""
    stage_var.set("background_removal")
    start_time = datetime.utcnow()

    if remover is None:
        raise BackgroundRemovalFailedError(
            "background removal is not configured",
            stage="background_removal"
        )

    try:
        with track_stage_latency("background_removal"):
            output = remover.remove(buffer)
    except BackgroundRemovalFailedError:
        raise
    except Exception as e:
        logger.error("background_removal_failed", error=str(e))
        raise BackgroundRemovalFailedError(
            f"Background removal failed: {str(e)}",
            stage="background_removal",
            cause=e
        ) from e

    metadata = {
        "stage": "background_removal",
        "dimensions": output.size,
        "duration_ms": _elapsed_ms(start_time)
    }

    return output, metadata


# =============================================================================
# Stage 3: Resize
# =============================================================================

def resize_stage(
    buffer: PixelBuffer,
    spec: ResizeSpec
) -> Tuple[PixelBuffer, Dict[str, Any]]:
    """Resize the buffer to the requested box."""
    stage_var.set("resize")
    start_time = datetime.utcnow()

    logger.info(
        "resize_started",
        source=buffer.size,
        width=spec.width,
        height=spec.height,
        mode=spec.mode.value
    )

    try:
        with track_stage_latency("resize"):
            output = resize(buffer, spec)
    except ReubahError:
        raise
    except Exception as e:
        logger.error("resize_failed", error=str(e))
        raise ResizeFailedError(f"Resize failed: {str(e)}", stage="resize", cause=e) from e

    metadata = {
        "stage": "resize",
        "original_dimensions": buffer.size,
        "output_dimensions": output.size,
        "mode": spec.mode.value,
        "duration_ms": _elapsed_ms(start_time)
    }

    logger.info("resize_completed", output_dimensions=output.size, duration_ms=metadata["duration_ms"])

    return output, metadata


# =============================================================================
# Stage 4: Convert
# =============================================================================

def convert_stage(
    buffer: PixelBuffer,
    manager: ConversionManager,
    target_format: ImageFormat
) -> Tuple[ConversionResult, Dict[str, Any]]:
    """Pre-process and encode in the target format."""
    stage_var.set("convert")
    start_time = datetime.utcnow()

    try:
        with track_stage_latency("convert"):
            result = manager.convert(buffer, target_format)
    except ReubahError:
        raise
    except Exception as e:
        logger.error("convert_failed", error=str(e))
        raise ProcessingFailedError(f"Conversion failed: {str(e)}", stage="convert", cause=e) from e

    metadata = {
        "stage": "convert",
        "format": result.format.value,
        "quality": result.codec.quality,
        "output_size": len(result.data),
        "duration_ms": _elapsed_ms(start_time)
    }

    logger.info(
        "convert_completed",
        format=result.format.value,
        output_size=len(result.data),
        duration_ms=metadata["duration_ms"]
    )

    return result, metadata


# =============================================================================
# Stage 5: Optimize
# =============================================================================

def optimize_stage(
    buffer: PixelBuffer,
    target_format: ImageFormat,
    quality: int,
    registry: CodecRegistry,
    background=(255, 255, 255)
) -> Tuple[PixelBuffer, Dict[str, Any]]:
    """
    Re-encode under the level derived from quality, then decode back so the
    final serialize step always starts from a buffer.
    """
    stage_var.set("optimize")
    start_time = datetime.utcnow()
    level = quality_level_for(quality)

    try:
        with track_stage_latency("optimize"):
            data = optimize_for_quality(buffer, target_format, quality, registry, background)
            output = registry.create(target_format).decode(data)
    except OptimizationFailedError:
        raise
    except ReubahError as e:
        raise OptimizationFailedError(
            f"Optimization failed: {e.message}",
            stage="optimize",
            cause=e
        ) from e
    except Exception as e:
        logger.error("optimize_failed", error=str(e))
        raise OptimizationFailedError(f"Optimization failed: {str(e)}", stage="optimize", cause=e) from e

    metadata = {
        "stage": "optimize",
        "level": level.value,
        "optimized_size": len(data),
        "duration_ms": _elapsed_ms(start_time)
    }

    logger.info("optimize_completed", level=level.value, optimized_size=len(data))

    return output, metadata


# =============================================================================
# Stage 6: Serialize
# =============================================================================

def serialize_stage(
    buffer: PixelBuffer,
    conversion: ConversionResult
) -> Tuple[bytes, Dict[str, Any]]:
    """Encode the final buffer with the target codec."""
    stage_var.set("serialize")
    start_time = datetime.utcnow()

    with track_stage_latency("serialize"):
        if buffer is conversion.buffer:
            # Nothing changed since conversion; its bytes are the answer
            data = conversion.data
        else:
            data = conversion.codec.encode(buffer)

    metadata = {
        "stage": "serialize",
        "format": conversion.format.value,
        "output_size": len(data),
        "duration_ms": _elapsed_ms(start_time)
    }

    return data, metadata
