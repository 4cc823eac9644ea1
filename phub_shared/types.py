"""
Shared types, enums, and constants.
"""
import os
from enum import Enum
from typing import Final, Optional


class ErrorCode(str, Enum):
    """Standardized error codes (string enum)."""

    # Client / validation
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"

    # Scan control
    CANCELLED = "CANCELLED"
    SCAN_IN_PROGRESS = "SCAN_IN_PROGRESS"

    # Server / infrastructure
    DB_ERROR = "DB_ERROR"
    TIMEOUT = "TIMEOUT"

    # Per-file derivation failures (recovered locally)
    HASH_FAILED = "HASH_FAILED"
    METADATA_FAILED = "METADATA_FAILED"
    THUMBNAIL_FAILED = "THUMBNAIL_FAILED"
    ML_ENQUEUE_FAILED = "ML_ENQUEUE_FAILED"
    UNSUPPORTED = "UNSUPPORTED"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


IMAGE_EXTENSIONS: Final[frozenset[str]] = frozenset(
    {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".tif", ".gif", ".webp", ".heic", ".heif"}
)

VIDEO_EXTENSIONS: Final[frozenset[str]] = frozenset(
    {
        ".mp4", ".avi", ".mov", ".mkv", ".wmv", ".flv", ".webm", ".m4v", ".3gp", ".mpeg", ".mpg",
        # related container formats
        ".mts", ".m2ts", ".ts", ".3g2", ".ogv",
    }
)


def classify_file(filename: str) -> Optional[MediaType]:
    """
    Classify file by extension.

    Args:
        filename: File name or path

    Returns:
        MediaType.IMAGE, MediaType.VIDEO, or None when the extension is not indexed
    """
    ext = os.path.splitext(filename)[1].lower()
    if ext in IMAGE_EXTENSIONS:
        return MediaType.IMAGE
    if ext in VIDEO_EXTENSIONS:
        return MediaType.VIDEO
    return None
