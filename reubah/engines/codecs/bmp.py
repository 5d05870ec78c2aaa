"""BMP codec - uncompressed, opaque, no quality concept."""

from reubah.engines.buffer import PixelBuffer
from reubah.engines.codecs.base import ImageCodec, flatten_alpha
from reubah.engines.codecs.options import ImageFormat, MAX_QUALITY


class BMPCodec(ImageCodec):
    format = ImageFormat.BMP
    pil_format = "BMP"
    supports_transparency = False

    @property
    def quality(self) -> int:
        return MAX_QUALITY

    def set_quality(self, quality: int):
        # Lossless; requested quality is ignored
        pass

    def encode(self, buffer: PixelBuffer) -> bytes:
        flat = flatten_alpha(buffer, self.background)
        return self._save(flat.to_image().convert("RGB"))
