"""
Image Processing Pipeline

Fixed-order, single-pass pipeline:
1. Decode - sniffed source format to a pixel buffer
2. Background removal (optional) - rembg collaborator
3. Resize (optional) - fit / fill / stretch
4. Convert - pre-process and encode in the target format
5. Optimize (optional) - level-tuned re-encode, decoded back
6. Serialize - final encode
"""

from reubah.pipeline.processor import (
    ImageProcessor,
    ProcessOptions,
    ProcessedImage,
    parse_quality,
)

__all__ = ["ImageProcessor", "ProcessOptions", "ProcessedImage", "parse_quality"]
