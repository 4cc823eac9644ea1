"""Shared utilities for the PhotoHub indexer."""
from .errors import sanitize_error_message
from .log import get_logger, log_structured, log_success, scan_id_var
from .result import Result
from .time import format_timestamp, now
from .types import (
    IMAGE_EXTENSIONS,
    VIDEO_EXTENSIONS,
    ErrorCode,
    MediaType,
    classify_file,
)

__all__ = [
    "Result",
    "get_logger",
    "log_success",
    "log_structured",
    "scan_id_var",
    "now",
    "format_timestamp",
    "ErrorCode",
    "MediaType",
    "IMAGE_EXTENSIONS",
    "VIDEO_EXTENSIONS",
    "classify_file",
    "sanitize_error_message",
]
