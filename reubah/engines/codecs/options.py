"""
Conversion Options

Format tags, the normalized 1-100 quality scale and the per-format
sub-options each codec understands.
"""

import math
from enum import Enum
from typing import Optional, Tuple

from PIL import ImageColor
from pydantic import BaseModel, Field, field_validator

from reubah.core.config import settings
from reubah.core.exceptions import InvalidFormatError


class ImageFormat(str, Enum):
    """Supported output formats."""
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    GIF = "gif"
    BMP = "bmp"

    @property
    def content_type(self) -> str:
        return f"image/{self.value}"

    @property
    def filename(self) -> str:
        return f"processed.{self.value}"


_FORMAT_ALIASES = {"jpg": ImageFormat.JPEG}


def parse_format(value) -> ImageFormat:
    """Resolve a format tag (case-insensitive, `jpg` accepted)."""
    if isinstance(value, ImageFormat):
        return value
    key = str(value or "").strip().lower()
    if key in _FORMAT_ALIASES:
        return _FORMAT_ALIASES[key]
    try:
        return ImageFormat(key)
    except ValueError:
        raise InvalidFormatError(f"unsupported format: {value}", stage="convert") from None


# Quality range
MIN_QUALITY = 1
MAX_QUALITY = 100

# Per-format defaults
DEFAULT_JPEG_QUALITY = 85
DEFAULT_PNG_COMPRESSION = 6
DEFAULT_WEBP_QUALITY = 85
DEFAULT_GIF_COLORS = 256


def normalize_quality(quality: int) -> int:
    """Clamp to the shared 1-100 scale."""
    return max(MIN_QUALITY, min(MAX_QUALITY, int(quality)))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def png_compression_for_quality(quality: int) -> int:
    """Map 1-100 quality to the 0-9 zlib effort scale."""
    return max(0, min(9, round_half_up(normalize_quality(quality) * 9 / 100)))


def gif_colors_for_quality(quality: int) -> int:
    """Map 1-100 quality to a 2-256 palette size."""
    return max(2, min(256, round_half_up(normalize_quality(quality) * 256 / 100)))


def parse_color(value: str) -> Tuple[int, int, int]:
    """Parse a CSS color string into an RGB triple."""
    try:
        return ImageColor.getrgb(value)[:3]
    except ValueError as e:
        raise InvalidFormatError(f"invalid color: {value}", cause=e) from e


# =============================================================================
# Per-format Sub-options
# =============================================================================

class WebPOptions(BaseModel):
    lossless: bool = False
    exact: bool = False  # keep RGB values under fully transparent pixels


class PNGOptions(BaseModel):
    compress_level: Optional[int] = Field(default=None, ge=0, le=9)
    quantize_colors: bool = False
    max_colors: int = Field(default=256, ge=2, le=256)


class GIFOptions(BaseModel):
    num_colors: Optional[int] = Field(default=None, ge=2, le=256)
    dither: bool = True


class ConversionOptions(BaseModel):
    """
    Everything a conversion needs besides the pixels.

    `quality` is always on the 1-100 scale; codecs translate it to their
    own controls. An explicit per-format sub-option (PNG compress_level,
    GIF num_colors, WebP lossless) takes precedence over the translation.
    """
    format: ImageFormat = ImageFormat.JPEG
    quality: int = settings.DEFAULT_QUALITY
    progressive: bool = False  # JPEG
    optimize_size: bool = False  # extra encoder passes (JPEG Huffman, PNG optimize)
    background: Tuple[int, int, int] = (255, 255, 255)

    webp: Optional[WebPOptions] = None
    png: Optional[PNGOptions] = None
    gif: Optional[GIFOptions] = None

    @field_validator("format", mode="before")
    @classmethod
    def _parse_format(cls, v):
        return parse_format(v)

    @field_validator("quality", mode="before")
    @classmethod
    def _normalize_quality(cls, v):
        return normalize_quality(v)

    @classmethod
    def for_format(cls, fmt, quality: Optional[int] = None, **kwargs) -> "ConversionOptions":
        """Defaults for a format, mirroring what each codec starts with."""
        fmt = parse_format(fmt)
        sub = {}
        if fmt is ImageFormat.WEBP:
            sub["webp"] = WebPOptions()
        elif fmt is ImageFormat.PNG:
            sub["png"] = PNGOptions()
        elif fmt is ImageFormat.GIF:
            sub["gif"] = GIFOptions()
        sub.update(kwargs)
        return cls(
            format=fmt,
            quality=settings.DEFAULT_QUALITY if quality is None else quality,
            background=parse_color(settings.BACKGROUND_COLOR),
            **sub,
        )
