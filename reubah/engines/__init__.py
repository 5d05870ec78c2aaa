"""
Pixel-level engines: buffer model, resize geometry, codecs, conversion,
optimization and the ICO container decoder.
"""
