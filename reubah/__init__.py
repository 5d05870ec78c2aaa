"""
Reubah - Image Processing Service

Decode -> background removal -> resize -> format conversion -> optimization.
"""

__version__ = "1.0.0"
