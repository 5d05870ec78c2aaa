"""
FastAPI Dependencies

Collaborators are built once in the application lifespan and kept on
`app.state`; these functions hand them to the routers.
"""

from fastapi import Request

from reubah.pipeline.processor import ImageProcessor
from reubah.services.document import DocumentConverter


def get_processor(request: Request) -> ImageProcessor:
    """Returns the image processor wired with the shared collaborators."""
    return request.app.state.processor


def get_document_converter(request: Request) -> DocumentConverter:
    """Returns the document converter."""
    return request.app.state.document_converter
