"""
Format Sniffing & Input Validation

Detects the source format from magic bytes (never from the filename or the
client's Content-Type) and enforces the MIME allow-list and size limits.
"""

from enum import Enum
from typing import Optional

from reubah.core.config import settings
from reubah.core.exceptions import InvalidMIMEError, InvalidSizeError
from reubah.engines.ico import is_ico

# Bytes inspected for sniffing
SNIFF_LENGTH = 512


class SourceFormat(str, Enum):
    """Formats the decode stage can route."""
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    GIF = "gif"
    BMP = "bmp"
    ICO = "ico"
    HEIC = "heic"
    UNKNOWN = "unknown"

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES.get(self, "application/octet-stream")


_MIME_TYPES = {
    SourceFormat.JPEG: "image/jpeg",
    SourceFormat.PNG: "image/png",
    SourceFormat.WEBP: "image/webp",
    SourceFormat.GIF: "image/gif",
    SourceFormat.BMP: "image/bmp",
    SourceFormat.ICO: "image/x-icon",
    SourceFormat.HEIC: "image/heic",
}

ALLOWED_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
    "image/bmp",
    "image/heic",
    "image/heif",
    "image/x-icon",
    "image/vnd.microsoft.icon",
})

# Magic bytes for format detection
MAGIC_BYTES = (
    (b"\xff\xd8\xff", SourceFormat.JPEG),
    (b"\x89PNG\r\n\x1a\n", SourceFormat.PNG),
    (b"GIF87a", SourceFormat.GIF),
    (b"GIF89a", SourceFormat.GIF),
    (b"BM", SourceFormat.BMP),
)

# ISO-BMFF brands used by HEIC/HEIF encoders (iOS included)
HEIC_BRANDS = (
    b"heic", b"heix", b"hevc", b"heim", b"heis",
    b"hevm", b"hevs", b"mif1", b"msf1", b"heif",
)


def is_heic(data: bytes) -> bool:
    head = data[:SNIFF_LENGTH]
    return any(b"ftyp" + brand in head for brand in HEIC_BRANDS)


def detect_format(data: bytes) -> SourceFormat:
    """Detect the source format from the leading bytes."""
    for magic, fmt in MAGIC_BYTES:
        if data.startswith(magic):
            return fmt

    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return SourceFormat.WEBP

    if is_ico(data):
        return SourceFormat.ICO

    if is_heic(data):
        return SourceFormat.HEIC

    return SourceFormat.UNKNOWN


def validate_mime(data: bytes) -> SourceFormat:
    """
    Sniff the payload and require it to be on the allow-list.

    Raises:
        InvalidMIMEError: the detected type is not an allowed image type
    """
    if not data:
        raise InvalidMIMEError("empty upload", stage="validate")

    detected = detect_format(data)
    if detected.mime_type not in ALLOWED_MIME_TYPES:
        raise InvalidMIMEError(
            f"unsupported file type: {detected.mime_type}",
            stage="validate",
            details={"detected": detected.value},
        )
    return detected


def validate_file_size(size: int, limit: Optional[int] = None):
    limit = limit or settings.MAX_FILE_SIZE_BYTES
    if size > limit:
        raise InvalidSizeError(
            f"file size exceeds maximum allowed size ({limit // (1024 * 1024)}MB)",
            stage="validate",
            details={"size": size, "limit": limit},
        )


def validate_image_dimensions(width: int, height: int):
    if width > settings.MAX_IMAGE_WIDTH or height > settings.MAX_IMAGE_HEIGHT:
        raise InvalidSizeError(
            f"image dimensions exceed maximum allowed size "
            f"({settings.MAX_IMAGE_WIDTH}x{settings.MAX_IMAGE_HEIGHT})",
            stage="validate",
            details={"width": width, "height": height},
        )
