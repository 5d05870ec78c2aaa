"""
Document Endpoint

POST /api/v1/documents/convert - Convert an office document to another format
"""

import asyncio
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response

from reubah.core.logging import get_logger
from reubah.core.exceptions import InvalidFormatError
from reubah.engines.sniff import validate_file_size
from reubah.services.document import (
    DOCUMENT_CONTENT_TYPES,
    DocumentConverter,
    normalize_extension,
)
from reubah.api.dependencies import get_document_converter

logger = get_logger(__name__)
router = APIRouter()


@router.post("/convert")
async def convert_document(
    document: UploadFile = File(..., description="Document to convert"),
    format: str = Form(..., description="Target format: pdf, doc, docx, odt, rtf, txt"),
    converter: DocumentConverter = Depends(get_document_converter)
):
    """Convert a document; the input format comes from the upload's file extension."""
    input_ext = normalize_extension(Path(document.filename or "").suffix)
    output_ext = normalize_extension(format)
    if not input_ext:
        raise InvalidFormatError("document has no file extension", stage="validate")

    data = await document.read()
    validate_file_size(len(data))

    logger.info(
        "document_conversion_requested",
        filename=document.filename,
        input_format=input_ext,
        output_format=output_ext,
        input_size=len(data)
    )

    converted = await asyncio.to_thread(converter.convert, data, input_ext, output_ext)

    stem = Path(document.filename).stem or "document"
    return Response(
        content=converted,
        media_type=DOCUMENT_CONTENT_TYPES.get(output_ext, "application/octet-stream"),
        headers={"Content-Disposition": f"attachment; filename={stem}.{output_ext}"}
    )
