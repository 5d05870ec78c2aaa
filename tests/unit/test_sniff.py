import pytest

from reubah.core.exceptions import InvalidMIMEError, InvalidSizeError
from reubah.engines.sniff import (
    SourceFormat,
    detect_format,
    validate_file_size,
    validate_image_dimensions,
    validate_mime,
)


@pytest.mark.parametrize("data, expected", [
    (b"\xff\xd8\xff\xe0" + b"\x00" * 16, SourceFormat.JPEG),
    (b"\x89PNG\r\n\x1a\n" + b"\x00" * 16, SourceFormat.PNG),
    (b"GIF89a" + b"\x00" * 16, SourceFormat.GIF),
    (b"BM" + b"\x00" * 16, SourceFormat.BMP),
    (b"RIFF\x00\x00\x00\x00WEBPVP8 ", SourceFormat.WEBP),
    (b"\x00\x00\x01\x00\x01\x00" + b"\x00" * 16, SourceFormat.ICO),
    (b"\x00\x00\x00\x18ftypheic" + b"\x00" * 16, SourceFormat.HEIC),
    (b"\x00\x00\x00\x18ftypmif1" + b"\x00" * 16, SourceFormat.HEIC),
    (b"%PDF-1.7", SourceFormat.UNKNOWN),
])
def test_detect_format(data, expected):
    assert detect_format(data) is expected


def test_validate_mime_accepts_images(png_bytes):
    assert validate_mime(png_bytes) is SourceFormat.PNG


def test_validate_mime_rejects_other_types():
    with pytest.raises(InvalidMIMEError) as exc_info:
        validate_mime(b"%PDF-1.7\n%binary")
    assert exc_info.value.status_code == 400


def test_validate_mime_rejects_empty():
    with pytest.raises(InvalidMIMEError):
        validate_mime(b"")


def test_validate_file_size():
    validate_file_size(1024, limit=2048)
    with pytest.raises(InvalidSizeError):
        validate_file_size(4096, limit=2048)


def test_validate_image_dimensions():
    validate_image_dimensions(8192, 8192)
    with pytest.raises(InvalidSizeError):
        validate_image_dimensions(8193, 10)
