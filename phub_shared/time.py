"""
Time utilities for timestamps.
"""
from __future__ import annotations

import time


def now() -> float:
    """Get current timestamp in seconds (float)."""
    return time.time()


def format_timestamp(ts: float | None = None) -> str:
    """
    Format timestamp as ISO 8601 string (UTC).

    Args:
        ts: Timestamp in seconds (default: now())

    Returns:
        ISO 8601 formatted string (e.g., "2025-12-29T19:30:45Z")
    """
    if ts is None:
        ts = now()
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(ts))
