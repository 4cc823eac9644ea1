"""
Metadata feature - EXIF extraction.
"""
from .exif import PillowExifExtractor

__all__ = ["PillowExifExtractor"]
