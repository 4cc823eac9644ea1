"""Backend-facing alias for shared utilities.

Feature modules import `...shared` so the backend package keeps a single
import seam for the shared helpers.
"""

from __future__ import annotations

from phub_shared import (
    IMAGE_EXTENSIONS,
    VIDEO_EXTENSIONS,
    ErrorCode,
    MediaType,
    Result,
    classify_file,
    format_timestamp,
    get_logger,
    log_structured,
    log_success,
    now,
    sanitize_error_message,
    scan_id_var,
)

__all__ = [
    "Result",
    "ErrorCode",
    "MediaType",
    "IMAGE_EXTENSIONS",
    "VIDEO_EXTENSIONS",
    "classify_file",
    "get_logger",
    "log_success",
    "log_structured",
    "scan_id_var",
    "sanitize_error_message",
    "now",
    "format_timestamp",
]
