"""
Prometheus Metrics for Observability

Tracks per-stage pipeline latency, processed images and external tool calls.
Exposes /api/v1/metrics endpoint for Prometheus scraping.
"""

import time
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Histogram,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY
)

# =============================================================================
# Metrics Definitions
# =============================================================================

# Pipeline Latency - Per Stage
pipeline_stage_latency_seconds = Histogram(
    "pipeline_stage_latency_seconds",
    "Time spent in each pipeline stage",
    labelnames=["stage", "status"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

# Total Pipeline Duration
pipeline_total_duration = Histogram(
    "pipeline_total_duration_seconds",
    "Total time for complete pipeline execution",
    labelnames=["status"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
)

# Processed Images
images_processed_total = Counter(
    "images_processed_total",
    "Total number of images run through the pipeline",
    labelnames=["output_format", "status"]
)

# External Tools (rembg, heif-convert, soffice)
external_tool_calls_total = Counter(
    "external_tool_calls_total",
    "Total number of external tool invocations",
    labelnames=["tool", "status"]
)

# API Request Metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration",
    labelnames=["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Application Info
app_info = Info(
    "reubah_app",
    "Application information"
)


# =============================================================================
# Helper Functions
# =============================================================================

def set_app_info(version: str, environment: str):
    """Set application info metric."""
    app_info.info({
        "version": version,
        "environment": environment
    })


@contextmanager
def track_stage_latency(stage: str):
    """
    Context manager to track stage latency.
    
    Usage:
        with track_stage_latency("resize"):
            result = resize(buffer, spec)
    """
    start_time = time.time()
    status = "success"
    
    try:
        yield
    except Exception:
        status = "failure"
        raise
    finally:
        duration = time.time() - start_time
        pipeline_stage_latency_seconds.labels(stage=stage, status=status).observe(duration)


def record_pipeline_completion(output_format: str, status: str, duration_seconds: float):
    """Record a finished (or aborted) pipeline invocation."""
    images_processed_total.labels(output_format=output_format, status=status).inc()
    pipeline_total_duration.labels(status=status).observe(duration_seconds)


def record_external_tool_call(tool: str, status: str):
    """Record an external tool invocation."""
    external_tool_calls_total.labels(tool=tool, status=status).inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get Prometheus content type."""
    return CONTENT_TYPE_LATEST
