import io

import numpy as np
import pytest
from PIL import Image

from reubah.core.exceptions import InvalidFormatError
from reubah.engines.buffer import PixelBuffer
from reubah.engines.codecs import CodecRegistry, ConversionOptions, ImageFormat
from reubah.engines.convert import ConversionManager, quantize_colors


@pytest.fixture
def manager():
    return ConversionManager(CodecRegistry())


@pytest.mark.parametrize("fmt", list(ImageFormat))
def test_convert_produces_target_format(manager, gradient_buffer, fmt):
    result = manager.convert(gradient_buffer, fmt)

    assert result.format is fmt
    with Image.open(io.BytesIO(result.data)) as image:
        assert image.format == fmt.value.upper()
        assert image.size == gradient_buffer.size


@pytest.mark.parametrize("fmt", [ImageFormat.JPEG, ImageFormat.BMP])
def test_opaque_targets_get_flattened_buffer(manager, transparent_buffer, fmt):
    result = manager.convert(transparent_buffer, fmt)

    assert not result.buffer.has_transparency()
    assert result.buffer.pixel(0, 0) == (255, 255, 255, 255)


@pytest.mark.parametrize("fmt", [ImageFormat.PNG, ImageFormat.WEBP, ImageFormat.GIF])
def test_alpha_targets_keep_transparency(manager, transparent_buffer, fmt):
    result = manager.convert(transparent_buffer, fmt)
    assert result.buffer.has_transparency()


def test_custom_background_color(transparent_buffer):
    options = ConversionOptions(format="bmp", background=(0, 0, 0))
    result = ConversionManager(CodecRegistry(), options).convert(transparent_buffer)
    assert result.buffer.pixel(0, 0) == (0, 0, 0, 255)


def test_png_quantize(gradient_buffer):
    options = ConversionOptions.for_format("png", png={"quantize_colors": True, "max_colors": 8})
    result = ConversionManager(CodecRegistry(), options).convert(gradient_buffer)

    colors = np.unique(result.buffer.samples.reshape(-1, 4), axis=0)
    assert len(colors) <= 8


def test_quantize_colors_keeps_size(gradient_buffer):
    reduced = quantize_colors(gradient_buffer, 16)
    assert reduced.size == gradient_buffer.size


def test_convert_empty_buffer(manager):
    with pytest.raises(InvalidFormatError):
        manager.convert(PixelBuffer.blank(0, 0), "png")


def test_convert_unknown_format(manager, gradient_buffer):
    with pytest.raises(InvalidFormatError):
        manager.convert(gradient_buffer, "tga")


def test_jpeg_quality_changes_size(gradient_buffer):
    registry = CodecRegistry()
    low = ConversionManager(registry, ConversionOptions.for_format("jpeg", 10)).convert(gradient_buffer)
    high = ConversionManager(registry, ConversionOptions.for_format("jpeg", 95)).convert(gradient_buffer)
    assert len(low.data) < len(high.data)
