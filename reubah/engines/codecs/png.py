"""PNG codec - lossless; quality only controls compression effort."""

from reubah.engines.buffer import PixelBuffer
from reubah.engines.codecs.base import ImageCodec
from reubah.engines.codecs.options import (
    ConversionOptions,
    DEFAULT_PNG_COMPRESSION,
    ImageFormat,
    png_compression_for_quality,
)


class PNGCodec(ImageCodec):
    format = ImageFormat.PNG
    pil_format = "PNG"
    supports_transparency = True

    def __init__(self):
        super().__init__()
        self.compression = DEFAULT_PNG_COMPRESSION
        self.optimize = False

    @property
    def quality(self) -> int:
        return (self.compression * 100) // 9

    def set_quality(self, quality: int):
        self.compression = png_compression_for_quality(quality)

    def configure(self, options: ConversionOptions):
        super().configure(options)
        self.optimize = options.optimize_size
        if options.png is not None and options.png.compress_level is not None:
            self.compression = options.png.compress_level

    def encode(self, buffer: PixelBuffer) -> bytes:
        return self._save(
            buffer.to_image(),
            compress_level=self.compression,
            optimize=self.optimize,
        )
