import io
import subprocess
from unittest.mock import patch

import pytest
from PIL import Image

from reubah.main import app
from reubah.pipeline.processor import ImageProcessor
from reubah.services.document import DocumentConverter


@pytest.mark.asyncio
async def test_health_check(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["api_v1"] == "/api/v1"


@pytest.mark.asyncio
async def test_process_png_to_jpeg(client, png_bytes):
    response = await client.post(
        "/api/v1/process",
        files={"image": ("photo.png", png_bytes, "image/png")},
        data={"width": "32", "height": "", "format": "jpg", "quality": "medium", "resizeMode": "fit"}
    )
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert response.headers["content-disposition"] == "attachment; filename=processed.jpeg"
    assert "x-process-time" in response.headers

    with Image.open(io.BytesIO(response.content)) as image:
        assert image.format == "JPEG"
        assert image.size == (32, 16)


@pytest.mark.asyncio
async def test_process_ico_source(client, make_ico, bgra_payload):
    data = make_ico([(32, 32, 32, bgra_payload(32, 32))])
    response = await client.post(
        "/api/v1/process",
        files={"image": ("favicon.ico", data, "image/x-icon")},
        data={"format": "png", "sourceFormat": "ico"}
    )
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"


@pytest.mark.asyncio
async def test_process_invalid_mime(client):
    response = await client.post(
        "/api/v1/process",
        files={"image": ("notes.png", b"%PDF-1.7 definitely not an image", "image/png")},
        data={"format": "png"}
    )
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "INVALID_MIME"


@pytest.mark.asyncio
async def test_process_invalid_format(client, png_bytes):
    response = await client.post(
        "/api/v1/process",
        files={"image": ("photo.png", png_bytes, "image/png")},
        data={"format": "tiff"}
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_FORMAT"


@pytest.mark.asyncio
async def test_process_invalid_width(client, png_bytes):
    response = await client.post(
        "/api/v1/process",
        files={"image": ("photo.png", png_bytes, "image/png")},
        data={"width": "wide"}
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_FORMAT"


@pytest.mark.asyncio
async def test_process_background_removal_failure(client, png_bytes):
    failed = subprocess.CompletedProcess(args=[], returncode=1, stdout=b"", stderr=b"boom")
    with patch("reubah.services.runner.subprocess.run", return_value=failed):
        response = await client.post(
            "/api/v1/process",
            files={"image": ("photo.png", png_bytes, "image/png")},
            data={"removeBackground": "true"}
        )
    assert response.status_code == 422
    body = response.json()
    assert body["error"]["code"] == "BACKGROUND_REMOVAL_FAILED"
    assert body["error"]["stage"] == "background_removal"


@pytest.mark.asyncio
async def test_document_unsupported_pair(client):
    response = await client.post(
        "/api/v1/documents/convert",
        files={"document": ("sheet.xls", b"data", "application/vnd.ms-excel")},
        data={"format": "pdf"}
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_metrics_endpoint(client):
    response = await client.get("/api/v1/metrics")
    assert response.status_code == 200
    assert "reubah_app_info" in response.text


@pytest.mark.asyncio
async def test_lifespan_wires_route_collaborators(client):
    assert isinstance(app.state.processor, ImageProcessor)
    assert isinstance(app.state.document_converter, DocumentConverter)
    assert not hasattr(app.state, "registry")
