"""
Document Conversion Collaborator

Converts office documents between formats with headless LibreOffice.
Operates on document bytes, never on pixels.
"""

import shlex
import tempfile
from pathlib import Path
from typing import Dict, FrozenSet, Optional

from reubah.core.config import settings
from reubah.core.exceptions import DocumentConversionFailedError, InvalidFormatError
from reubah.core.logging import get_logger
from reubah.services.runner import run_tool

logger = get_logger(__name__)

DOCUMENT_FORMATS = ("pdf", "doc", "docx", "odt", "rtf", "txt")

# Every document format converts to every other one
SUPPORTED_CONVERSIONS: Dict[str, FrozenSet[str]] = {
    fmt: frozenset(other for other in DOCUMENT_FORMATS if other != fmt)
    for fmt in DOCUMENT_FORMATS
}

DOCUMENT_CONTENT_TYPES = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "odt": "application/vnd.oasis.opendocument.text",
    "rtf": "application/rtf",
    "txt": "text/plain",
}


def normalize_extension(ext: str) -> str:
    return (ext or "").strip().lower().lstrip(".")


def is_format_supported(input_ext: str, output_ext: str) -> bool:
    return normalize_extension(output_ext) in SUPPORTED_CONVERSIONS.get(normalize_extension(input_ext), ())


class DocumentConverter:
    stage = "document_conversion"

    def __init__(self, command: Optional[str] = None, timeout: Optional[float] = None):
        self.command = shlex.split(command or settings.SOFFICE_COMMAND)
        self.timeout = timeout or settings.DOCUMENT_TIMEOUT_SECONDS

    def convert(self, data: bytes, input_ext: str, output_ext: str) -> bytes:
        """
        Raises:
            InvalidFormatError: the conversion pair is not supported
            DocumentConversionFailedError: LibreOffice failed or produced nothing
        """
        input_ext = normalize_extension(input_ext)
        output_ext = normalize_extension(output_ext)
        if not is_format_supported(input_ext, output_ext):
            raise InvalidFormatError(
                f"unsupported document conversion: {input_ext} -> {output_ext}",
                stage=self.stage,
            )

        with tempfile.TemporaryDirectory(prefix="doc_conversion_") as tmp:
            tmp_dir = Path(tmp)
            source = tmp_dir / f"input.{input_ext}"
            source.write_bytes(data)

            run_tool(
                "soffice",
                self.command + [
                    "--headless",
                    "--convert-to", output_ext,
                    "--outdir", str(tmp_dir),
                    str(source),
                ],
                DocumentConversionFailedError,
                stage=self.stage,
                timeout=self.timeout,
            )

            converted = [
                path for path in tmp_dir.iterdir()
                if path.suffix == f".{output_ext}" and path != source
            ]
            if not converted:
                raise DocumentConversionFailedError(
                    "converted file not found in output directory",
                    stage=self.stage,
                )
            result = converted[0].read_bytes()

        logger.info(
            "document_converted",
            input_format=input_ext,
            output_format=output_ext,
            input_size=len(data),
            output_size=len(result),
        )
        return result
