"""
Reubah Image Processing Service - Main Application

FastAPI application with:
- API versioning (/api/v1/)
- Structured logging with structlog
- Prometheus metrics
- Global exception handling
- Image pipeline (decode, background removal, resize, convert, optimize)
- Document conversion through LibreOffice
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from reubah.core.config import settings
from reubah.core.logging import setup_logging, get_logger
from reubah.core.exceptions import register_exception_handlers
from reubah.core.metrics import set_app_info, http_requests_total, http_request_duration_seconds
from reubah.engines.codecs.registry import CodecRegistry
from reubah.pipeline.processor import ImageProcessor
from reubah.services import BackgroundRemover, DocumentConverter, HeicTranscoder
from reubah.api.v1 import api_v1_router


# =============================================================================
# Initialize Logging
# =============================================================================
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.LOG_FORMAT_JSON,
    log_file=settings.LOG_FILE
)
logger = get_logger(__name__)


# =============================================================================
# Lifespan Handler
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler - builds the shared collaborators once."""
    startup_start = time.time()

    logger.info(
        "application_starting",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT
    )

    # Immutable after this point; every request builds its own codecs from it
    registry = CodecRegistry()
    app.state.processor = ImageProcessor(
        registry=registry,
        background_remover=BackgroundRemover(),
        heic_transcoder=HeicTranscoder()
    )
    app.state.document_converter = DocumentConverter()
    logger.info("collaborators_initialized", formats=[f.value for f in registry.formats])

    set_app_info(
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT
    )

    startup_time = time.time() - startup_start
    logger.info("application_ready", startup_time_seconds=startup_time)

    yield

    logger.info("application_shutdown_complete")


# =============================================================================
# Create FastAPI Application
# =============================================================================
app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Image processing service with:

    - **Conversion**: JPEG, PNG, WebP, GIF, BMP output
    - **Decoding**: the above plus ICO and HEIC input
    - **Resizing**: fit, fill and stretch modes with Lanczos resampling
    - **Background Removal**: rembg integration
    - **Optimization**: level-tuned re-encoding
    - **Documents**: LibreOffice conversion between pdf/doc/docx/odt/rtf/txt
    - **Observability**: Structured logging, Prometheus metrics

    ## API Versioning

    All endpoints are versioned under `/api/v1/`
    """,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# =============================================================================
# Middleware
# =============================================================================

# CORS
cors_origins = settings.CORS_ORIGINS.split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_request_timing(request: Request, call_next):
    """Track request timing for metrics."""
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path
    ).observe(duration)

    http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code
    ).inc()

    response.headers["X-Process-Time"] = str(duration)

    return response


# =============================================================================
# Register Exception Handlers
# =============================================================================
register_exception_handlers(app)


# =============================================================================
# Include API Routers
# =============================================================================
app.include_router(api_v1_router)


# =============================================================================
# Root Endpoints
# =============================================================================

@app.get("/", tags=["root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs": "/api/docs",
        "api_v1": "/api/v1",
        "metrics": "/api/v1/metrics"
    }


@app.get("/health", tags=["health"])
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION
    }


# =============================================================================
# Development Server
# =============================================================================
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "reubah.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
