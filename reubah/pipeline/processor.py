"""
Image Processor - Pipeline Orchestrator

Runs the stages in a fixed order:

    decode -> background removal? -> resize? -> convert -> optimize? -> serialize

The first failing stage aborts the request; no later stage runs.
"""

import time
import uuid
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field, field_validator

from reubah.core.config import settings
from reubah.core.logging import get_logger, LogContext
from reubah.core.metrics import record_pipeline_completion
from reubah.core.exceptions import ReubahError, InvalidFormatError
from reubah.engines.buffer import PixelBuffer
from reubah.engines.codecs.base import ImageCodec
from reubah.engines.codecs.options import (
    ConversionOptions,
    ImageFormat,
    normalize_quality,
    parse_format,
)
from reubah.engines.codecs.registry import CodecRegistry
from reubah.engines.convert import ConversionManager, ConversionResult
from reubah.engines.ico import IcoDecoder
from reubah.engines.resize import ResizeMode, ResizeSpec, parse_resize_mode
from reubah.engines.sniff import SourceFormat, validate_file_size, validate_mime
from reubah.pipeline.stages import (
    decode_stage,
    background_removal_stage,
    resize_stage,
    convert_stage,
    optimize_stage,
    serialize_stage,
)
from reubah.services.background import BackgroundRemover
from reubah.services.heic import HeicTranscoder

logger = get_logger(__name__)


# =============================================================================
# Options
# =============================================================================

QUALITY_PRESETS = {
    "low": 60,
    "medium": 75,
    "high": 90,
    "lossless": 100,
}


def parse_quality(value) -> int:
    """
    Map a preset name or a number to a 1-100 quality.

    Unrecognized values fall back to the default quality.
    """
    if value is None:
        return settings.DEFAULT_QUALITY
    if isinstance(value, str):
        key = value.strip().lower()
        if key in QUALITY_PRESETS:
            return QUALITY_PRESETS[key]
        try:
            value = int(key)
        except ValueError:
            return settings.DEFAULT_QUALITY
    return normalize_quality(int(value))


def parse_source_format(value: Optional[str]) -> Optional[SourceFormat]:
    """Client-supplied source format hint; blank means "sniff it"."""
    if not value:
        return None
    try:
        return SourceFormat(value.strip().lower())
    except ValueError as e:
        raise InvalidFormatError(
            f"unsupported source format: {value}",
            stage="validate",
            cause=e
        ) from e


class ProcessOptions(BaseModel):
    """Caller's requested transformation."""
    width: int = 0
    height: int = 0
    resize_mode: ResizeMode = Field(default_factory=lambda: parse_resize_mode(None))
    output_format: ImageFormat = Field(default_factory=lambda: parse_format(settings.DEFAULT_FORMAT))
    quality: int = settings.DEFAULT_QUALITY
    remove_background: bool = False
    optimize: bool = False
    source_format: Optional[SourceFormat] = None

    @field_validator("resize_mode", mode="before")
    @classmethod
    def _parse_resize_mode(cls, v):
        return v if isinstance(v, ResizeMode) else parse_resize_mode(v)

    @field_validator("output_format", mode="before")
    @classmethod
    def _parse_output_format(cls, v):
        return parse_format(v or settings.DEFAULT_FORMAT)

    @field_validator("quality", mode="before")
    @classmethod
    def _parse_quality(cls, v):
        return parse_quality(v)

    @field_validator("source_format", mode="before")
    @classmethod
    def _parse_source_format(cls, v):
        return v if isinstance(v, SourceFormat) else parse_source_format(v)

    @property
    def resize_spec(self) -> ResizeSpec:
        return ResizeSpec(width=self.width, height=self.height, mode=self.resize_mode)


# =============================================================================
# Result
# =============================================================================

class ProcessedImage:
    """
    Final buffer plus the codec it will be serialized with.

    Encoding happens once; repeated `encode()` calls return the same bytes.
    """

    def __init__(
        self,
        buffer: PixelBuffer,
        conversion: ConversionResult,
        quality: int,
        stages: Optional[List[Dict[str, Any]]] = None
    ):
        self.buffer = buffer
        self.conversion = conversion
        self.quality = quality
        self.stages = stages or []
        self._encoded: Optional[bytes] = None

    @property
    def format(self) -> ImageFormat:
        return self.conversion.format

    @property
    def codec(self) -> ImageCodec:
        return self.conversion.codec

    @property
    def content_type(self) -> str:
        return self.format.content_type

    @property
    def filename(self) -> str:
        return self.format.filename

    def encode(self) -> bytes:
        if self._encoded is None:
            self._encoded, metadata = serialize_stage(self.buffer, self.conversion)
            self.stages.append(metadata)
        return self._encoded


# =============================================================================
# Processor
# =============================================================================

class ImageProcessor:
    """
    Runs one request through the pipeline.

    Collaborators are injected once at startup; each call builds its own
    codecs, so concurrent requests share nothing mutable.
    """

    def __init__(
        self,
        registry: Optional[CodecRegistry] = None,
        background_remover: Optional[BackgroundRemover] = None,
        heic_transcoder: Optional[HeicTranscoder] = None,
        ico_decoder: Optional[IcoDecoder] = None
    ):
        self.registry = registry or CodecRegistry()
        self.background_remover = background_remover
        self.heic_transcoder = heic_transcoder
        self.ico_decoder = ico_decoder or IcoDecoder()

    def process(
        self,
        data: bytes,
        options: ProcessOptions,
        request_id: Optional[str] = None
    ) -> ProcessedImage:
        """
        Validate, decode and transform raw upload bytes.

        Raises:
            ReubahError: the first stage failure, unchanged
        """
        request_id = request_id or str(uuid.uuid4())

        with LogContext(request_id=request_id):
            start_time = time.time()
            try:
                validate_file_size(len(data))

                # An explicit ICO tag routes straight to the ICO decoder,
                # which checks the signature itself; everything else is sniffed
                if options.source_format is SourceFormat.ICO:
                    source = SourceFormat.ICO
                else:
                    source = validate_mime(data)

                buffer, metadata = decode_stage(
                    data,
                    source,
                    self.registry,
                    heic_transcoder=self.heic_transcoder,
                    ico_decoder=self.ico_decoder
                )
            except ReubahError as e:
                self._record_failure(options, start_time, e)
                raise

            return self._run(buffer, options, start_time, [metadata])

    def process_buffer(
        self,
        buffer: PixelBuffer,
        options: ProcessOptions,
        request_id: Optional[str] = None
    ) -> ProcessedImage:
        """Transform an already decoded buffer."""
        if buffer is None or buffer.is_empty:
            raise InvalidFormatError("no image to process", stage="validate")

        with LogContext(request_id=request_id or str(uuid.uuid4())):
            return self._run(buffer, options, time.time(), [])

    def _run(
        self,
        buffer: PixelBuffer,
        options: ProcessOptions,
        start_time: float,
        stages: List[Dict[str, Any]]
    ) -> ProcessedImage:
        logger.info(
            "pipeline_started",
            source=buffer.size,
            output_format=options.output_format.value,
            quality=options.quality,
            remove_background=options.remove_background,
            optimize=options.optimize
        )

        try:
            if options.remove_background:
                buffer, metadata = background_removal_stage(buffer, self.background_remover)
                stages.append(metadata)

            if options.width or options.height:
                buffer, metadata = resize_stage(buffer, options.resize_spec)
                stages.append(metadata)

            conversion_options = ConversionOptions.for_format(options.output_format, options.quality)
            manager = ConversionManager(self.registry, conversion_options)
            conversion, metadata = convert_stage(buffer, manager, options.output_format)
            stages.append(metadata)
            buffer = conversion.buffer

            if options.optimize:
                buffer, metadata = optimize_stage(
                    buffer,
                    options.output_format,
                    options.quality,
                    self.registry,
                    conversion_options.background
                )
                stages.append(metadata)

            processed = ProcessedImage(buffer, conversion, options.quality, stages)
            processed.encode()
        except ReubahError as e:
            self._record_failure(options, start_time, e)
            raise

        duration = time.time() - start_time
        record_pipeline_completion(options.output_format.value, "success", duration)
        logger.info(
            "pipeline_completed",
            output_format=processed.format.value,
            dimensions=processed.buffer.size,
            output_size=len(processed.encode()),
            duration_ms=int(duration * 1000)
        )
        return processed

    def _record_failure(self, options: ProcessOptions, start_time: float, error: ReubahError):
        duration = time.time() - start_time
        record_pipeline_completion(options.output_format.value, "failure", duration)
        logger.error(
            "pipeline_failed",
            error_code=error.code.value,
            failed_stage=error.stage,
            error=error.message,
            duration_ms=int(duration * 1000)
        )
