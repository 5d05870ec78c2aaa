"""
Conversion Manager

Orchestrates pre-processing -> codec selection -> encode.

Before anything reaches an encoder that cannot represent alpha, every
pixel is flattened onto the configured opaque background so no encoder
ever sees alpha data it would turn into garbage colors.
"""

from typing import NamedTuple, Optional

from PIL import Image

from reubah.core.exceptions import InvalidFormatError, ProcessingFailedError
from reubah.core.logging import get_logger
from reubah.engines.buffer import PixelBuffer
from reubah.engines.codecs.base import PIL_ERRORS, ImageCodec, flatten_alpha
from reubah.engines.codecs.options import ConversionOptions, ImageFormat, parse_format
from reubah.engines.codecs.registry import CodecRegistry

logger = get_logger(__name__)


class ConversionResult(NamedTuple):
    """Encoded bytes plus the exact buffer and codec that produced them."""
    data: bytes
    buffer: PixelBuffer
    codec: ImageCodec

    @property
    def format(self) -> ImageFormat:
        return self.codec.format


def quantize_colors(buffer: PixelBuffer, max_colors: int) -> PixelBuffer:
    """Reduce the buffer to at most `max_colors` distinct RGBA colors."""
    image = buffer.to_rgba().to_image()
    try:
        reduced = image.quantize(colors=max_colors, method=Image.Quantize.FASTOCTREE)
        return PixelBuffer.from_image(reduced.convert("RGBA"))
    except PIL_ERRORS as e:
        raise ProcessingFailedError("color quantization failed", stage="convert", cause=e) from e


class ConversionManager:
    """Converts buffers to encoded bytes for a target format."""

    def __init__(self, registry: CodecRegistry, options: Optional[ConversionOptions] = None):
        self.registry = registry
        self.options = options or ConversionOptions.for_format(ImageFormat.JPEG)

    def _options_for(self, fmt: ImageFormat) -> ConversionOptions:
        if self.options.format is fmt:
            return self.options
        return self.options.model_copy(update={"format": fmt})

    def preprocess(self, buffer: PixelBuffer, codec: ImageCodec, options: ConversionOptions) -> PixelBuffer:
        """Quantize (if asked) and strip alpha the codec cannot carry."""
        if options.png is not None and options.png.quantize_colors:
            buffer = quantize_colors(buffer, options.png.max_colors)

        if not codec.supports_transparency:
            buffer = flatten_alpha(buffer, tuple(options.background))

        return buffer

    def convert(self, buffer: PixelBuffer, target_format=None) -> ConversionResult:
        """
        Encode the buffer in the target format (defaults to the options' format).

        Raises:
            InvalidFormatError: unknown target format or empty buffer
            ProcessingFailedError: the encoder rejected the buffer
        """
        fmt = parse_format(target_format or self.options.format)
        if buffer is None or buffer.is_empty:
            raise InvalidFormatError("cannot convert an empty image", stage="convert")

        options = self._options_for(fmt)
        codec = self.registry.create(fmt, options)

        prepared = self.preprocess(buffer, codec, options)
        data = codec.encode(prepared)

        logger.debug(
            "conversion_encoded",
            format=fmt.value,
            quality=codec.quality,
            flattened=not codec.supports_transparency,
            output_size=len(data),
        )
        return ConversionResult(data=data, buffer=prepared, codec=codec)

