"""
Codec Registry

An immutable mapping from format tag to codec factory, built once at
startup and handed to whoever needs codecs. Every lookup returns a fresh
codec so per-request quality settings never leak between requests.
"""

from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional

from reubah.core.exceptions import InvalidFormatError
from reubah.engines.codecs.base import ImageCodec
from reubah.engines.codecs.bmp import BMPCodec
from reubah.engines.codecs.gif import GIFCodec
from reubah.engines.codecs.jpeg import JPEGCodec
from reubah.engines.codecs.options import ConversionOptions, ImageFormat, parse_format
from reubah.engines.codecs.png import PNGCodec
from reubah.engines.codecs.webp import WebPCodec

CodecFactory = Callable[[], ImageCodec]

DEFAULT_CODECS: Dict[ImageFormat, CodecFactory] = {
    ImageFormat.JPEG: JPEGCodec,
    ImageFormat.PNG: PNGCodec,
    ImageFormat.WEBP: WebPCodec,
    ImageFormat.GIF: GIFCodec,
    ImageFormat.BMP: BMPCodec,
}


class CodecRegistry:
    """Read-only format -> codec factory table."""

    def __init__(self, factories: Optional[Mapping[ImageFormat, CodecFactory]] = None):
        self._factories = MappingProxyType(dict(factories or DEFAULT_CODECS))

    @property
    def formats(self):
        return tuple(self._factories)

    def create(self, fmt, options: Optional[ConversionOptions] = None) -> ImageCodec:
        """
        Build a codec for a format tag.

        Raises:
            InvalidFormatError: the tag is unknown or not registered
        """
        fmt = parse_format(fmt)
        factory = self._factories.get(fmt)
        if factory is None:
            raise InvalidFormatError(f"unsupported format: {fmt.value}", stage="convert")

        codec = factory()
        if options is not None:
            codec.configure(options)
        return codec

    def supports_transparency(self, fmt) -> bool:
        return self.create(fmt).supports_transparency

    def __contains__(self, fmt) -> bool:
        try:
            return parse_format(fmt) in self._factories
        except InvalidFormatError:
            return False
