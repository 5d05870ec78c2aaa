"""
ICO Decoder

Parses Windows icon containers byte by byte and reconstructs the single
best sub-image (largest area, then deepest bit depth).

Layout (all little-endian):

    ICONDIR        6 bytes   reserved(2)=0, type(2)=1, count(2)
    ICONDIRENTRY  16 bytes   width(1) height(1) colors(1) reserved(1)
                             planes(2) bpp(2) length(4) offset(4)
    image data               raw bottom-up BGRA/BGR rows, optionally
                             preceded by a BITMAPINFOHEADER, or a PNG

Decoding runs linearly through
ValidateHeader -> ScanDirectory -> SelectBestEntry -> ExtractPixels.
"""

import struct
from typing import List, NamedTuple

import numpy as np

from reubah.core.exceptions import InvalidFormatError
from reubah.core.logging import get_logger
from reubah.engines.buffer import PixelBuffer
from reubah.engines.codecs.png import PNGCodec

logger = get_logger(__name__)

ICO_SIGNATURE = b"\x00\x00\x01\x00"
HEADER_SIZE = 6
ENTRY_SIZE = 16
BITMAPINFOHEADER_SIZE = 40
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


class IcoDirectoryEntry(NamedTuple):
    """One fixed 16-byte directory record."""
    width: int
    height: int
    bits_per_pixel: int
    length: int
    offset: int

    @property
    def area(self) -> int:
        return self.width * self.height


def is_ico(data: bytes) -> bool:
    return len(data) >= 4 and data[:4] == ICO_SIGNATURE


class IcoDecoder:
    """Decodes the highest-resolution image out of an ICO container."""

    stage = "ico_decode"

    def decode(self, data: bytes) -> PixelBuffer:
        count = self.validate_header(data)
        entries = self.scan_directory(data, count)
        best = self.select_best_entry(entries)
        buffer = self.extract_pixels(data, best)

        logger.info(
            "ico_decoded",
            entries=count,
            width=best.width,
            height=best.height,
            bits_per_pixel=best.bits_per_pixel,
        )
        return buffer

    # -------------------------------------------------------------------------
    # ValidateHeader
    # -------------------------------------------------------------------------

    def validate_header(self, data: bytes) -> int:
        if len(data) < HEADER_SIZE:
            raise InvalidFormatError("invalid ICO file: too small", stage=self.stage)
        if not is_ico(data):
            raise InvalidFormatError("invalid ICO signature", stage=self.stage)

        (count,) = struct.unpack_from("<H", data, 4)
        if count < 1:
            raise InvalidFormatError("no images in ICO file", stage=self.stage)
        return count

    # -------------------------------------------------------------------------
    # ScanDirectory
    # -------------------------------------------------------------------------

    def scan_directory(self, data: bytes, count: int) -> List[IcoDirectoryEntry]:
        entries = []
        for i in range(count):
            offset = HEADER_SIZE + ENTRY_SIZE * i
            if offset + ENTRY_SIZE > len(data):
                raise InvalidFormatError(
                    "invalid ICO directory",
                    stage=self.stage,
                    details={"entry": i, "count": count},
                )

            width, height = data[offset], data[offset + 1]
            (bpp,) = struct.unpack_from("<H", data, offset + 6)
            length, image_offset = struct.unpack_from("<II", data, offset + 8)

            # Zero encodes 256
            entries.append(IcoDirectoryEntry(
                width=width or 256,
                height=height or 256,
                bits_per_pixel=bpp,
                length=length,
                offset=image_offset,
            ))
        return entries

    # -------------------------------------------------------------------------
    # SelectBestEntry
    # -------------------------------------------------------------------------

    @staticmethod
    def select_best_entry(entries: List[IcoDirectoryEntry]) -> IcoDirectoryEntry:
        """Largest area wins; equal areas go to the higher bit depth; first seen breaks exact ties."""
        best = entries[0]
        for entry in entries[1:]:
            if (entry.area, entry.bits_per_pixel) > (best.area, best.bits_per_pixel):
                best = entry
        return best

    # -------------------------------------------------------------------------
    # ExtractPixels
    # -------------------------------------------------------------------------

    def extract_pixels(self, data: bytes, entry: IcoDirectoryEntry) -> PixelBuffer:
        if entry.offset + entry.length > len(data):
            raise InvalidFormatError(
                "invalid image data offset",
                stage=self.stage,
                details={"offset": entry.offset, "length": entry.length, "size": len(data)},
            )

        payload = data[entry.offset:entry.offset + entry.length]

        if payload.startswith(PNG_SIGNATURE):
            return self._decode_png(payload)

        payload = self._skip_bitmap_header(payload, entry)

        if entry.bits_per_pixel == 32:
            return self._decode_bgra(payload, entry)
        if entry.bits_per_pixel == 24:
            return self._decode_bgr(payload, entry)

        raise InvalidFormatError(
            f"unsupported bit depth: {entry.bits_per_pixel}",
            stage=self.stage,
            details={"bits_per_pixel": entry.bits_per_pixel},
        )

    def _skip_bitmap_header(self, payload: bytes, entry: IcoDirectoryEntry) -> bytes:
        """Drop a leading BITMAPINFOHEADER whose geometry matches the entry."""
        if len(payload) < BITMAPINFOHEADER_SIZE:
            return payload
        header_size, width, height = struct.unpack_from("<Iii", payload, 0)
        # DIB height covers the XOR image plus the AND mask
        if header_size == BITMAPINFOHEADER_SIZE and width == entry.width and height in (entry.height, entry.height * 2):
            return payload[BITMAPINFOHEADER_SIZE:]
        return payload

    def _require(self, payload: bytes, needed: int, entry: IcoDirectoryEntry):
        if len(payload) < needed:
            raise InvalidFormatError(
                f"truncated {entry.bits_per_pixel}-bit image data",
                stage=self.stage,
                details={"needed": needed, "available": len(payload)},
            )

    def _decode_bgra(self, payload: bytes, entry: IcoDirectoryEntry) -> PixelBuffer:
        # Rows are exactly width*4 bytes, no padding
        needed = entry.width * entry.height * 4
        self._require(payload, needed, entry)

        rows = np.frombuffer(payload, dtype=np.uint8, count=needed)
        bgra = rows.reshape(entry.height, entry.width, 4)[::-1]

        rgba = bgra[:, :, [2, 1, 0, 3]]
        return PixelBuffer.from_array(rgba)

    def _decode_bgr(self, payload: bytes, entry: IcoDirectoryEntry) -> PixelBuffer:
        # Rows are padded to a 4-byte boundary
        stride = (entry.width * 3 + 3) & ~3
        needed = stride * entry.height
        self._require(payload, needed, entry)

        rows = np.frombuffer(payload, dtype=np.uint8, count=needed).reshape(entry.height, stride)
        bgr = rows[::-1, :entry.width * 3].reshape(entry.height, entry.width, 3)

        rgba = np.empty((entry.height, entry.width, 4), dtype=np.uint8)
        rgba[:, :, :3] = bgr[:, :, ::-1]
        rgba[:, :, 3] = 255
        return PixelBuffer.from_array(rgba)

    def _decode_png(self, payload: bytes) -> PixelBuffer:
        return PNGCodec().decode(payload)
