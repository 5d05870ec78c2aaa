import numpy as np
import pytest

from reubah.core.exceptions import InvalidFormatError, InvalidSizeError
from reubah.engines.buffer import PixelBuffer
from reubah.engines.resize import (
    ResizeMode,
    ResizeSpec,
    compute_geometry,
    parse_resize_mode,
    resize,
)


def test_fit_keeps_aspect_ratio(gradient_buffer):
    result = resize(gradient_buffer, ResizeSpec(width=200, height=200, mode=ResizeMode.FIT))
    assert result.size == (200, 100)


def test_fit_constrained_axis_is_exact():
    geometry = compute_geometry(300, 200, ResizeSpec(width=100, height=100, mode=ResizeMode.FIT))
    assert (geometry.width, geometry.height) == (100, 66)


def test_fit_derives_missing_dimension(gradient_buffer):
    result = resize(gradient_buffer, ResizeSpec(width=50, height=0, mode=ResizeMode.FIT))
    assert result.size == (50, 25)


def test_fill_covers_and_crops(gradient_buffer):
    result = resize(gradient_buffer, ResizeSpec(width=80, height=80, mode=ResizeMode.FILL))
    assert result.size == (80, 80)

    geometry = compute_geometry(100, 50, ResizeSpec(width=80, height=80, mode=ResizeMode.FILL))
    assert geometry.output_size == (80, 80)
    assert geometry.box == (25.0, 0.0, 75.0, 50.0)


def test_fill_odd_ratios_are_exact():
    geometry = compute_geometry(333, 77, ResizeSpec(width=101, height=59, mode=ResizeMode.FILL))
    assert geometry.output_size == (101, 59)


def test_fill_wide_source_within_limits():
    # Scaling 4000x100 to cover 500x500 would need a 20000px wide intermediate
    source = PixelBuffer.blank(4000, 100, (10, 20, 30, 255))
    result = resize(source, ResizeSpec(width=500, height=500, mode=ResizeMode.FILL))
    assert result.size == (500, 500)
    assert result.pixel(250, 250) == (10, 20, 30, 255)


# =============================================================================
# Extreme aspect ratios
# =============================================================================

EXTREME_SOURCES = [(4000, 100), (100, 4000), (1, 8192), (8192, 1)]
SMALL_BOXES = [(500, 500), (50, 50), (64, 32)]


@pytest.mark.parametrize("src_w, src_h", EXTREME_SOURCES)
@pytest.mark.parametrize("box_w, box_h", SMALL_BOXES)
def test_fill_box_stays_inside_source(src_w, src_h, box_w, box_h):
    geometry = compute_geometry(src_w, src_h, ResizeSpec(width=box_w, height=box_h, mode=ResizeMode.FILL))
    left, top, right, bottom = geometry.box
    assert geometry.output_size == (box_w, box_h)
    assert 0 <= left < right <= src_w
    assert 0 <= top < bottom <= src_h


@pytest.mark.parametrize("src_w, src_h", EXTREME_SOURCES)
@pytest.mark.parametrize("box_w, box_h", SMALL_BOXES)
@pytest.mark.parametrize("mode", [ResizeMode.FILL, ResizeMode.STRETCH])
def test_exact_modes_on_extreme_sources(src_w, src_h, box_w, box_h, mode):
    source = PixelBuffer.blank(src_w, src_h, (200, 100, 50, 255))
    result = resize(source, ResizeSpec(width=box_w, height=box_h, mode=mode))
    assert result.size == (box_w, box_h)


@pytest.mark.parametrize("src_w, src_h", EXTREME_SOURCES)
@pytest.mark.parametrize("box_w, box_h", SMALL_BOXES)
def test_fit_is_idempotent_on_extreme_sources(src_w, src_h, box_w, box_h):
    spec = ResizeSpec(width=box_w, height=box_h, mode=ResizeMode.FIT)
    once = resize(PixelBuffer.blank(src_w, src_h, (0, 0, 0, 255)), spec)
    twice = resize(once, spec)
    assert once.width <= box_w and once.height <= box_h
    assert twice.size == once.size


def test_stretch_ignores_aspect(gradient_buffer):
    result = resize(gradient_buffer, ResizeSpec(width=30, height=90, mode=ResizeMode.STRETCH))
    assert result.size == (30, 90)


@pytest.mark.parametrize("mode", list(ResizeMode))
def test_resize_is_idempotent(gradient_buffer, mode):
    spec = ResizeSpec(width=40, height=40, mode=mode)
    once = resize(gradient_buffer, spec)
    twice = resize(once, spec)
    assert twice.size == once.size


def test_noop_returns_same_buffer(gradient_buffer):
    assert resize(gradient_buffer, ResizeSpec()) is gradient_buffer


def test_resize_does_not_mutate_input(gradient_buffer):
    before = gradient_buffer.samples.copy()
    resize(gradient_buffer, ResizeSpec(width=10, height=10, mode=ResizeMode.STRETCH))
    assert np.array_equal(gradient_buffer.samples, before)


def test_negative_dimensions_rejected(gradient_buffer):
    with pytest.raises(InvalidSizeError):
        resize(gradient_buffer, ResizeSpec(width=-1, height=10))


def test_oversized_dimensions_rejected(gradient_buffer):
    with pytest.raises(InvalidSizeError):
        resize(gradient_buffer, ResizeSpec(width=9000, height=10))


def test_empty_input_rejected():
    empty = PixelBuffer.blank(0, 0)
    with pytest.raises(InvalidFormatError):
        resize(empty, ResizeSpec(width=10, height=10))
    with pytest.raises(InvalidFormatError):
        resize(None, ResizeSpec(width=10, height=10))


def test_parse_resize_mode_aliases():
    assert parse_resize_mode("cover") is ResizeMode.FILL
    assert parse_resize_mode("EXACT") is ResizeMode.STRETCH
    assert parse_resize_mode("") is ResizeMode.FIT
    with pytest.raises(InvalidFormatError):
        parse_resize_mode("squash")
