"""WebP codec - lossy or lossless, with alpha."""

from reubah.engines.buffer import PixelBuffer
from reubah.engines.codecs.base import ImageCodec
from reubah.engines.codecs.options import (
    ConversionOptions,
    DEFAULT_WEBP_QUALITY,
    ImageFormat,
    MAX_QUALITY,
    normalize_quality,
)


class WebPCodec(ImageCodec):
    format = ImageFormat.WEBP
    pil_format = "WEBP"
    supports_transparency = True

    def __init__(self):
        super().__init__()
        self._quality = DEFAULT_WEBP_QUALITY
        self.lossless = False
        self.exact = False
        self.method = 4

    @property
    def quality(self) -> int:
        if self.lossless:
            return MAX_QUALITY
        return self._quality

    def set_quality(self, quality: int):
        self._quality = normalize_quality(quality)
        # Top of the scale is a request for lossless mode
        self.lossless = self._quality == MAX_QUALITY

    def set_lossless(self, lossless: bool):
        self.lossless = lossless
        if lossless:
            self._quality = MAX_QUALITY

    def configure(self, options: ConversionOptions):
        super().configure(options)
        if options.webp is not None:
            if options.webp.lossless:
                self.set_lossless(True)
            self.exact = options.webp.exact
        if options.optimize_size:
            self.method = 6

    def encode(self, buffer: PixelBuffer) -> bytes:
        return self._save(
            buffer.to_image(),
            lossless=self.lossless,
            quality=self._quality,
            exact=self.exact,
            method=self.method,
        )
