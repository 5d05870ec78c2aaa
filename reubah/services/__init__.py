"""
External process collaborators: background removal, HEIC transcoding,
document conversion.
"""

from reubah.services.background import BackgroundRemover
from reubah.services.document import DocumentConverter
from reubah.services.heic import HeicTranscoder

__all__ = ["BackgroundRemover", "DocumentConverter", "HeicTranscoder"]
