import io
from unittest.mock import patch

import numpy as np
import pytest
from PIL import Image

from reubah.core.exceptions import OptimizationFailedError, ProcessingFailedError
from reubah.engines.buffer import PixelBuffer
from reubah.engines.codecs import CodecRegistry, ImageFormat
from reubah.engines.optimize import (
    QualityLevel,
    auto_adjust_quality,
    calculate_complexity,
    default_options,
    optimize,
    optimize_for_quality,
    options_for_level,
    quality_level_for,
)


@pytest.mark.parametrize("quality, level", [
    (1, QualityLevel.LOW),
    (60, QualityLevel.LOW),
    (61, QualityLevel.MEDIUM),
    (75, QualityLevel.MEDIUM),
    (76, QualityLevel.HIGH),
    (90, QualityLevel.HIGH),
    (91, QualityLevel.LOSSLESS),
    (100, QualityLevel.LOSSLESS),
])
def test_quality_level_buckets(quality, level):
    assert quality_level_for(quality) is level


def test_explicit_level_disables_auto_quality():
    assert default_options("jpeg").auto_quality
    opts = options_for_level("jpeg", QualityLevel.MEDIUM)
    assert opts.quality == 75
    assert not opts.auto_quality
    assert opts.progressive


def test_auto_quality_only_from_default_options(gradient_buffer):
    registry = CodecRegistry()
    with patch("reubah.engines.optimize.auto_adjust_quality", wraps=auto_adjust_quality) as adjust:
        optimize(gradient_buffer, "jpeg", default_options("jpeg"), registry)
        assert adjust.call_count == 1

        optimize_for_quality(gradient_buffer, "jpeg", 75, registry)
        assert adjust.call_count == 1


def test_lossless_level_uses_max_compression():
    assert options_for_level("png", QualityLevel.LOSSLESS).compression == 9


def test_flat_image_has_low_complexity():
    assert calculate_complexity(PixelBuffer.blank(64, 64, (10, 10, 10, 255))) == 0.0


def test_noise_has_high_complexity():
    rng = np.random.default_rng(0)
    samples = rng.integers(0, 256, size=(100, 100, 4), dtype=np.uint8)
    samples[:, :, 3] = 255
    assert calculate_complexity(PixelBuffer.from_array(samples)) > 0.3


def test_optimize_jpeg_is_progressive(gradient_buffer):
    data = optimize_for_quality(gradient_buffer, "jpeg", 70, CodecRegistry())
    with Image.open(io.BytesIO(data)) as image:
        assert image.format == "JPEG"
        assert image.info.get("progressive") or image.info.get("progression")


def test_optimize_webp_lossless_bucket(gradient_buffer):
    registry = CodecRegistry()
    data = optimize_for_quality(gradient_buffer, ImageFormat.WEBP, 95, registry)
    assert registry.create("webp").decode(data) == gradient_buffer


@pytest.mark.parametrize("fmt", ["png", "gif", "bmp"])
def test_optimize_other_formats(gradient_buffer, fmt):
    data = optimize_for_quality(gradient_buffer, fmt, 50, CodecRegistry())
    with Image.open(io.BytesIO(data)) as image:
        assert image.size == gradient_buffer.size


def test_encoder_failure_becomes_optimization_failure(gradient_buffer):
    class BrokenCodec:
        def configure(self, options):
            pass

        def encode(self, buffer):
            raise ProcessingFailedError("boom", stage="encode")

    registry = CodecRegistry({ImageFormat.PNG: BrokenCodec})
    with pytest.raises(OptimizationFailedError):
        optimize(gradient_buffer, "png", default_options("png"), registry)
