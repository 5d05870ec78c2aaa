"""
Format codecs: one class per output format behind a shared interface.
"""

from reubah.engines.codecs.base import ImageCodec, flatten_alpha
from reubah.engines.codecs.bmp import BMPCodec
from reubah.engines.codecs.gif import GIFCodec
from reubah.engines.codecs.jpeg import JPEGCodec
from reubah.engines.codecs.options import (
    ConversionOptions,
    GIFOptions,
    ImageFormat,
    PNGOptions,
    WebPOptions,
    parse_format,
)
from reubah.engines.codecs.png import PNGCodec
from reubah.engines.codecs.registry import CodecRegistry
from reubah.engines.codecs.webp import WebPCodec

__all__ = [
    "BMPCodec",
    "CodecRegistry",
    "ConversionOptions",
    "GIFCodec",
    "GIFOptions",
    "ImageCodec",
    "ImageFormat",
    "JPEGCodec",
    "PNGCodec",
    "PNGOptions",
    "WebPCodec",
    "WebPOptions",
    "flatten_alpha",
    "parse_format",
]
