"""
Background Removal Collaborator

Shells out to `rembg i - -`: PNG in on stdin, PNG with alpha out on stdout.
"""

import shlex
from typing import Optional

from reubah.core.config import settings
from reubah.core.exceptions import BackgroundRemovalFailedError, ProcessingFailedError
from reubah.core.logging import get_logger, with_logging
from reubah.engines.buffer import PixelBuffer
from reubah.engines.codecs.png import PNGCodec
from reubah.services.runner import run_tool

logger = get_logger(__name__)


class BackgroundRemover:
    """Removes the background of a buffer through the rembg CLI."""

    stage = "background_removal"

    def __init__(self, command: Optional[str] = None, timeout: Optional[float] = None):
        self.command = shlex.split(command or settings.REMBG_COMMAND)
        self.timeout = timeout or settings.REMBG_TIMEOUT_SECONDS

    @with_logging("background_removal")
    def remove(self, buffer: PixelBuffer) -> PixelBuffer:
        """
        Raises:
            BackgroundRemovalFailedError: tool failure or undecodable output
        """
        codec = PNGCodec()
        # Fast zlib level; the tool decodes it immediately
        codec.compression = 1
        try:
            payload = codec.encode(buffer)
        except ProcessingFailedError as e:
            raise BackgroundRemovalFailedError(
                "failed to encode input for background removal", stage=self.stage, cause=e
            ) from e

        proc = run_tool(
            "rembg",
            self.command + ["i", "-", "-"],
            BackgroundRemovalFailedError,
            stage=self.stage,
            timeout=self.timeout,
            input_data=payload,
        )

        if not proc.stdout:
            raise BackgroundRemovalFailedError("rembg produced no output", stage=self.stage)

        try:
            result = codec.decode(proc.stdout)
        except ProcessingFailedError as e:
            raise BackgroundRemovalFailedError(
                "rembg produced malformed output", stage=self.stage, cause=e.cause or e
            ) from e

        logger.info("background_removed", input_size=len(payload), output_size=len(proc.stdout))
        return result
