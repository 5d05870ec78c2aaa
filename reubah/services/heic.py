"""
HEIC Transcoding Collaborator

HEIC/HEIF inputs are transcoded to PNG with libheif's `heif-convert`
and decoded from there.
"""

import shlex
import tempfile
from pathlib import Path
from typing import Optional

from reubah.core.config import settings
from reubah.core.exceptions import ProcessingFailedError
from reubah.core.logging import get_logger
from reubah.engines.buffer import PixelBuffer
from reubah.engines.codecs.png import PNGCodec
from reubah.services.runner import run_tool

logger = get_logger(__name__)


class HeicTranscoder:
    stage = "heic_decode"

    def __init__(self, command: Optional[str] = None, timeout: Optional[float] = None):
        self.command = shlex.split(command or settings.HEIF_CONVERT_COMMAND)
        self.timeout = timeout or settings.HEIF_TIMEOUT_SECONDS

    def decode(self, data: bytes) -> PixelBuffer:
        """
        Raises:
            ProcessingFailedError: the tool failed or produced no image
        """
        with tempfile.TemporaryDirectory(prefix="heic_") as tmp:
            source = Path(tmp) / "input.heic"
            target = Path(tmp) / "output.png"
            source.write_bytes(data)

            run_tool(
                "heif-convert",
                self.command + [str(source), str(target)],
                ProcessingFailedError,
                stage=self.stage,
                timeout=self.timeout,
            )

            # Multi-image containers are written as output-1.png, output-2.png, ...
            outputs = sorted(Path(tmp).glob("output*.png"))
            if not outputs:
                raise ProcessingFailedError("heif-convert produced no output", stage=self.stage)
            png = outputs[0].read_bytes()

        logger.info("heic_transcoded", input_size=len(data), output_size=len(png))
        return PNGCodec().decode(png)
