"""JPEG codec - lossy, no alpha channel."""

from reubah.engines.buffer import PixelBuffer
from reubah.engines.codecs.base import ImageCodec, flatten_alpha
from reubah.engines.codecs.options import (
    ConversionOptions,
    DEFAULT_JPEG_QUALITY,
    ImageFormat,
)


class JPEGCodec(ImageCodec):
    format = ImageFormat.JPEG
    pil_format = "JPEG"
    supports_transparency = False

    def __init__(self):
        super().__init__()
        self._quality = DEFAULT_JPEG_QUALITY
        self.progressive = False
        self.optimize = False

    def configure(self, options: ConversionOptions):
        super().configure(options)
        self.progressive = options.progressive
        self.optimize = options.optimize_size

    def encode(self, buffer: PixelBuffer) -> bytes:
        # Quality maps 1:1 onto the encoder's native scale
        flat = flatten_alpha(buffer, self.background)
        image = flat.to_image().convert("RGB")
        return self._save(
            image,
            quality=self.quality,
            progressive=self.progressive,
            optimize=self.optimize,
        )
