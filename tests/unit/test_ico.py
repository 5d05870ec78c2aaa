import io
import struct

import pytest
from PIL import Image

from reubah.core.exceptions import InvalidFormatError
from reubah.engines.ico import IcoDecoder, IcoDirectoryEntry, is_ico


def test_decodes_single_32bpp_entry(make_ico, bgra_payload):
    data = make_ico([(32, 32, 32, bgra_payload(32, 32, (255, 0, 0, 255)))])
    buffer = IcoDecoder().decode(data)

    assert buffer.size == (32, 32)
    assert buffer.pixel(0, 0) == (255, 0, 0, 255)
    assert buffer.pixel(31, 31) == (255, 0, 0, 255)


def test_rows_are_bottom_up(make_ico):
    # First stored row is the bottom of the image
    bottom = bytes([0, 255, 0, 255]) * 2  # green
    top = bytes([255, 0, 0, 255]) * 2     # blue
    buffer = IcoDecoder().decode(make_ico([(2, 2, 32, bottom + top)]))

    assert buffer.pixel(0, 0) == (0, 0, 255, 255)
    assert buffer.pixel(0, 1) == (0, 255, 0, 255)


def test_corrupted_signature_rejected(make_ico, bgra_payload):
    data = bytearray(make_ico([(16, 16, 32, bgra_payload(16, 16))]))
    data[2] = 0x02
    assert not is_ico(bytes(data))
    with pytest.raises(InvalidFormatError):
        IcoDecoder().decode(bytes(data))


def test_too_small_rejected():
    with pytest.raises(InvalidFormatError):
        IcoDecoder().decode(b"\x00\x00\x01")


def test_zero_images_rejected():
    with pytest.raises(InvalidFormatError):
        IcoDecoder().decode(struct.pack("<HHH", 0, 1, 0))


def test_selects_largest_area(make_ico, bgra_payload):
    data = make_ico([
        (16, 16, 32, bgra_payload(16, 16, (255, 0, 0, 255))),
        (48, 48, 32, bgra_payload(48, 48, (0, 255, 0, 255))),
        (32, 32, 32, bgra_payload(32, 32, (0, 0, 255, 255))),
    ])
    buffer = IcoDecoder().decode(data)

    assert buffer.size == (48, 48)
    assert buffer.pixel(10, 10) == (0, 255, 0, 255)


def test_equal_area_prefers_deeper_bit_depth(make_ico, bgra_payload):
    data = make_ico([
        (32, 32, 8, b"\x00" * (32 * 32)),
        (32, 32, 32, bgra_payload(32, 32, (0, 0, 255, 255))),
    ])
    buffer = IcoDecoder().decode(data)
    assert buffer.pixel(0, 0) == (0, 0, 255, 255)


def test_select_best_entry_first_wins_exact_tie():
    first = IcoDirectoryEntry(16, 16, 32, 1024, 38)
    second = IcoDirectoryEntry(16, 16, 32, 1024, 1062)
    assert IcoDecoder.select_best_entry([first, second]) is first


def test_zero_dimension_means_256(make_ico, bgra_payload):
    data = make_ico([(256, 256, 32, bgra_payload(256, 256))])
    buffer = IcoDecoder().decode(data)
    assert buffer.size == (256, 256)


def test_24bpp_rows_are_padded(make_ico):
    # 3 pixels * 3 bytes = 9, padded to 12
    row = bytes([255, 0, 0]) * 3 + b"\x00" * 3
    buffer = IcoDecoder().decode(make_ico([(3, 2, 24, row * 2)]))

    assert buffer.size == (3, 2)
    assert buffer.pixel(2, 1) == (0, 0, 255, 255)


def test_unsupported_bit_depth(make_ico):
    data = make_ico([(16, 16, 8, b"\x00" * 256)])
    with pytest.raises(InvalidFormatError) as exc_info:
        IcoDecoder().decode(data)
    assert "8" in exc_info.value.message


def test_offset_beyond_buffer(make_ico, bgra_payload):
    data = bytearray(make_ico([(16, 16, 32, bgra_payload(16, 16))]))
    struct.pack_into("<I", data, 6 + 12, len(data) + 100)
    with pytest.raises(InvalidFormatError):
        IcoDecoder().decode(bytes(data))


def test_truncated_directory():
    data = struct.pack("<HHH", 0, 1, 3) + b"\x00" * 20
    with pytest.raises(InvalidFormatError):
        IcoDecoder().decode(data)


def test_truncated_pixel_data(make_ico):
    data = make_ico([(16, 16, 32, b"\x00" * 100)])
    with pytest.raises(InvalidFormatError):
        IcoDecoder().decode(data)


def test_skips_bitmap_info_header(make_ico, bgra_payload):
    header = struct.pack("<IiiHHIIiiII", 40, 8, 16, 1, 32, 0, 0, 0, 0, 0, 0)
    payload = header + bgra_payload(8, 8, (10, 20, 30, 255))
    buffer = IcoDecoder().decode(make_ico([(8, 8, 32, payload)]))

    assert buffer.size == (8, 8)
    assert buffer.pixel(0, 0) == (10, 20, 30, 255)


def test_png_payload(make_ico):
    output = io.BytesIO()
    Image.new("RGBA", (24, 24), (1, 2, 3, 200)).save(output, format="PNG")
    buffer = IcoDecoder().decode(make_ico([(24, 24, 32, output.getvalue())]))

    assert buffer.size == (24, 24)
    assert buffer.pixel(5, 5) == (1, 2, 3, 200)
