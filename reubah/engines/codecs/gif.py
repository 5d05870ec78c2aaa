"""
GIF codec - palette based, single transparent index.

Pixels are first dithered (Floyd-Steinberg) onto a fixed 256-entry
reference palette, then reduced to the palette size derived from the
quality knob. Pixels with alpha below half are mapped to one reserved
transparent index.
"""

import numpy as np
from PIL import Image

from reubah.engines.buffer import PixelBuffer
from reubah.engines.codecs.base import ImageCodec
from reubah.engines.codecs.options import (
    ConversionOptions,
    DEFAULT_GIF_COLORS,
    ImageFormat,
    gif_colors_for_quality,
)

ALPHA_THRESHOLD = 128


def plan9_palette():
    """The 256-color Plan 9 palette: 4x4x4 RGB cube with 4 intensity sub-steps."""
    palette = [(0, 0, 0)] * 256
    for r in range(4):
        for v in range(4):
            base = (r * 4 + v) * 16
            j = v - r
            for g in range(4):
                for b in range(4):
                    den = max(r, g, b)
                    if den == 0:
                        color = (0x11 * v, 0x11 * v, 0x11 * v)
                    else:
                        num = 17 * (4 * den + v)
                        color = (r * num // den, g * num // den, b * num // den)
                    palette[base + (j & 0x0F)] = color
                    j += 1
    return palette


def _palette_image(colors) -> Image.Image:
    image = Image.new("P", (1, 1))
    image.putpalette([channel for color in colors for channel in color])
    return image


REFERENCE_PALETTE = plan9_palette()
_REFERENCE_PALETTE_IMAGE = _palette_image(REFERENCE_PALETTE)


class GIFCodec(ImageCodec):
    format = ImageFormat.GIF
    pil_format = "GIF"
    supports_transparency = True

    def __init__(self):
        super().__init__()
        self.num_colors = DEFAULT_GIF_COLORS
        self.dither = True

    @property
    def quality(self) -> int:
        return (self.num_colors * 100) // 256

    def set_quality(self, quality: int):
        self.num_colors = gif_colors_for_quality(quality)

    def configure(self, options: ConversionOptions):
        super().configure(options)
        if options.gif is not None:
            if options.gif.num_colors is not None:
                self.num_colors = options.gif.num_colors
            self.dither = options.gif.dither

    def _quantize(self, rgb: Image.Image, colors: int) -> Image.Image:
        dither = Image.Dither.FLOYDSTEINBERG if self.dither else Image.Dither.NONE
        paletted = rgb.quantize(palette=_REFERENCE_PALETTE_IMAGE, dither=dither)
        if colors < len(REFERENCE_PALETTE):
            paletted = paletted.convert("RGB").quantize(
                colors=colors,
                method=Image.Quantize.MEDIANCUT,
                dither=Image.Dither.NONE,
            )
        return paletted

    def encode(self, buffer: PixelBuffer) -> bytes:
        rgba = buffer.to_rgba().samples
        transparent = rgba[:, :, 3] < ALPHA_THRESHOLD
        has_transparency = bool(transparent.any())

        # Reserve one palette slot for the transparent index
        colors = min(self.num_colors, 255) if has_transparency else self.num_colors

        rgb = Image.fromarray(np.ascontiguousarray(rgba[:, :, :3]))
        paletted = self._quantize(rgb, colors)

        if not has_transparency:
            return self._save(paletted, optimize=False)

        palette = paletted.getpalette()[: colors * 3]
        transparent_index = len(palette) // 3
        palette += [0, 0, 0] * (256 - transparent_index)

        indices = np.array(paletted, dtype=np.uint8)
        indices[transparent] = transparent_index

        output = Image.frombytes("P", paletted.size, indices.tobytes())
        output.putpalette(palette)
        return self._save(output, transparency=transparent_index, optimize=False)
