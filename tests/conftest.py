import io
import struct

import numpy as np
import pytest
from httpx import AsyncClient, ASGITransport
from PIL import Image
from typing import AsyncGenerator

from reubah.main import app
from reubah.engines.buffer import PixelBuffer


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    # Trigger lifespan events so the collaborators land on app.state
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac


# =============================================================================
# Image Fixtures
# =============================================================================

def _gradient(width: int, height: int, alpha: int = 255) -> np.ndarray:
    xs = np.linspace(0, 255, width, dtype=np.uint16)
    ys = np.linspace(0, 255, height, dtype=np.uint16)
    samples = np.empty((height, width, 4), dtype=np.uint8)
    samples[:, :, 0] = xs[np.newaxis, :]
    samples[:, :, 1] = ys[:, np.newaxis]
    samples[:, :, 2] = 128
    samples[:, :, 3] = alpha
    return samples


@pytest.fixture
def gradient_buffer() -> PixelBuffer:
    """Opaque 100x50 gradient."""
    return PixelBuffer.from_array(_gradient(100, 50))


@pytest.fixture
def transparent_buffer() -> PixelBuffer:
    """20x20, left half fully transparent red, right half opaque blue."""
    samples = np.zeros((20, 20, 4), dtype=np.uint8)
    samples[:, :10] = (255, 0, 0, 0)
    samples[:, 10:] = (0, 0, 255, 255)
    return PixelBuffer.from_array(samples)


@pytest.fixture
def png_bytes() -> bytes:
    output = io.BytesIO()
    Image.fromarray(_gradient(64, 32)).save(output, format="PNG")
    return output.getvalue()


@pytest.fixture
def jpeg_bytes() -> bytes:
    output = io.BytesIO()
    Image.fromarray(_gradient(64, 32)[:, :, :3]).save(output, format="JPEG", quality=90)
    return output.getvalue()


# =============================================================================
# ICO Builders
# =============================================================================

@pytest.fixture
def make_ico():
    """
    Build an ICO container from (width, height, bpp, payload) tuples.

    Payloads are placed back to back after the directory.
    """
    def build(images):
        header = struct.pack("<HHH", 0, 1, len(images))
        offset = 6 + 16 * len(images)
        directory = b""
        data = b""
        for width, height, bpp, payload in images:
            directory += struct.pack(
                "<BBBBHHII",
                width % 256, height % 256, 0, 0, 1, bpp, len(payload), offset + len(data)
            )
            data += payload
        return header + directory + data

    return build


@pytest.fixture
def bgra_payload():
    """Bottom-up BGRA rows for a solid RGBA color."""
    def build(width, height, rgba=(255, 0, 0, 255)):
        r, g, b, a = rgba
        return bytes([b, g, r, a]) * (width * height)

    return build
