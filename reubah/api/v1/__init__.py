"""
API v1 Router Module

All v1 endpoints are prefixed with /api/v1/

- POST /api/v1/process - Image processing pipeline
- POST /api/v1/documents/convert - Document format conversion
- GET /api/v1/metrics - Prometheus metrics
"""

from fastapi import APIRouter

from reubah.api.v1.process import router as process_router
from reubah.api.v1.documents import router as documents_router
from reubah.api.v1.metrics import router as metrics_router

# Main v1 router
api_v1_router = APIRouter(prefix="/api/v1")

api_v1_router.include_router(process_router, prefix="/process", tags=["images"])
api_v1_router.include_router(documents_router, prefix="/documents", tags=["documents"])
api_v1_router.include_router(metrics_router, tags=["metrics"])
