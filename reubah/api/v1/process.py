"""
Process Endpoint - Image Pipeline

POST /api/v1/process - Upload an image and get the transformed bytes back:
1. Size and MIME validation on the raw upload
2. Decode, optional background removal, resize, convert, optional optimize
3. Respond with the encoded image as an attachment
"""

import asyncio
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response

from reubah.core.logging import get_logger, set_request_context
from reubah.core.exceptions import InvalidFormatError
from reubah.engines.sniff import validate_file_size
from reubah.pipeline.processor import ImageProcessor, ProcessOptions
from reubah.api.dependencies import get_processor

logger = get_logger(__name__)
router = APIRouter()


# =============================================================================
# Form Parsing
# =============================================================================

def parse_dimension(value: Optional[str], name: str) -> int:
    """Blank means unconstrained; anything else must be an integer."""
    if value is None or not value.strip():
        return 0
    try:
        return int(value.strip())
    except ValueError as e:
        raise InvalidFormatError(
            f"invalid {name} value",
            stage="validate",
            details={name: value},
            cause=e
        ) from e


def parse_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


def build_options(
    width: Optional[str],
    height: Optional[str],
    resize_mode: Optional[str],
    output_format: Optional[str],
    quality: Optional[str],
    remove_background: Optional[str],
    optimize: Optional[str],
    source_format: Optional[str]
) -> ProcessOptions:
    return ProcessOptions(
        width=parse_dimension(width, "width"),
        height=parse_dimension(height, "height"),
        resize_mode=resize_mode,
        output_format=output_format,
        quality=quality,
        remove_background=parse_flag(remove_background),
        optimize=parse_flag(optimize),
        source_format=source_format
    )


# =============================================================================
# Endpoints
# =============================================================================

@router.post("")
async def process_image(
    image: UploadFile = File(..., description="Image to process"),
    width: Optional[str] = Form(default=None),
    height: Optional[str] = Form(default=None),
    resizeMode: Optional[str] = Form(default=None),
    format: Optional[str] = Form(default=None),
    quality: Optional[str] = Form(default=None),
    removeBackground: Optional[str] = Form(default=None),
    optimize: Optional[str] = Form(default=None),
    sourceFormat: Optional[str] = Form(default=None),
    processor: ImageProcessor = Depends(get_processor)
):
    """
    Run an uploaded image through the pipeline.

    Form fields mirror the upload form: `width`/`height` (blank or 0 for
    unconstrained), `resizeMode` (fit, fill, stretch), `format` (jpeg, png,
    webp, gif, bmp), `quality` (low, medium, high, lossless or 1-100),
    `removeBackground` and `optimize` ("true" to enable), and an optional
    `sourceFormat` hint ("ico").
    """
    request_id = str(uuid.uuid4())
    set_request_context(request_id)

    data = await image.read()
    validate_file_size(len(data))

    logger.info(
        "process_request_received",
        filename=image.filename,
        input_size=len(data)
    )

    options = build_options(
        width, height, resizeMode, format, quality,
        removeBackground, optimize, sourceFormat
    )

    # Pixel work is CPU-bound; keep it off the event loop
    processed = await asyncio.to_thread(processor.process, data, options, request_id)
    body = processed.encode()

    return Response(
        content=body,
        media_type=processed.content_type,
        headers={
            "Content-Disposition": f"attachment; filename={processed.filename}",
            "X-Request-ID": request_id
        }
    )
