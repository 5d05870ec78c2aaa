"""
Global Exception Handling

Error taxonomy for the processing core and the structured JSON error
responses the HTTP surface builds from it.

Every error is terminal for the current request. Nothing in the core
retries; the first failure is surfaced with the offending stage attached.
"""

import traceback
from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from reubah.core.logging import get_logger, request_id_var

logger = get_logger(__name__)


class ErrorCode(str, Enum):
    """Error kinds shared by every component."""
    INVALID_FORMAT = "INVALID_FORMAT"
    INVALID_SIZE = "INVALID_SIZE"
    INVALID_MIME = "INVALID_MIME"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    OPTIMIZATION_FAILED = "OPTIMIZATION_FAILED"
    RESIZE_FAILED = "RESIZE_FAILED"
    BACKGROUND_REMOVAL_FAILED = "BACKGROUND_REMOVAL_FAILED"
    DOCUMENT_CONVERSION_FAILED = "DOCUMENT_CONVERSION_FAILED"


# =============================================================================
# Custom Exceptions
# =============================================================================

class ReubahError(Exception):
    """Base exception for the processing service."""
    
    code: ErrorCode = ErrorCode.PROCESSING_FAILED
    status_code: int = 500
    
    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.stage = stage
        self.cause = cause
        self.details = details or {}
        super().__init__(self.message)
    
    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.code.value}: {self.message} ({self.cause})"
        return f"{self.code.value}: {self.message}"
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "stage": self.stage,
            "details": self.details,
        }


class InvalidFormatError(ReubahError):
    """Malformed or unsupported input structure, bad enum value."""
    code = ErrorCode.INVALID_FORMAT
    status_code = 400


class InvalidSizeError(ReubahError):
    """Dimension or file size bounds violated."""
    code = ErrorCode.INVALID_SIZE
    status_code = 400


class InvalidMIMEError(ReubahError):
    """Sniffed type is not on the allow-list."""
    code = ErrorCode.INVALID_MIME
    status_code = 400


class ProcessingFailedError(ReubahError):
    """A transformation stage failed for a structurally valid input."""
    code = ErrorCode.PROCESSING_FAILED
    status_code = 422


class OptimizationFailedError(ProcessingFailedError):
    """The optimize re-encode could not be produced."""
    code = ErrorCode.OPTIMIZATION_FAILED


class ResizeFailedError(ProcessingFailedError):
    """Resampling failed."""
    code = ErrorCode.RESIZE_FAILED


class BackgroundRemovalFailedError(ProcessingFailedError):
    """The background removal collaborator failed."""
    code = ErrorCode.BACKGROUND_REMOVAL_FAILED


class DocumentConversionFailedError(ProcessingFailedError):
    """The document converter collaborator failed."""
    code = ErrorCode.DOCUMENT_CONVERSION_FAILED


# =============================================================================
# Exception Handlers
# =============================================================================

def _error_response(status_code: int, error: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": error,
            "request_id": request_id_var.get(),
            "timestamp": datetime.utcnow().isoformat() + "Z"
        }
    )


def register_exception_handlers(app: FastAPI):
    """Register custom exception handlers with FastAPI app."""
    
    @app.exception_handler(ReubahError)
    async def reubah_exception_handler(request: Request, exc: ReubahError):
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "request_failed",
            code=exc.code.value,
            error=exc.message,
            stage=exc.stage,
            cause=str(exc.cause) if exc.cause else None,
            path=str(request.url.path)
        )
        return _error_response(exc.status_code, exc.to_dict())
    
    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
            traceback=traceback.format_exc()
        )
        return _error_response(
            500,
            {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"}
        )
