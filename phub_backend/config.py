"""
Configuration for the PhotoHub indexer.

Every value can be overridden from the environment; malformed values are logged
and replaced by the default.
"""
import logging
import os
from pathlib import Path

from .utils import env_bool

logger = logging.getLogger(__name__)


def _env_raw(*names: str, default: str | None = None) -> str | None:
    for name in names:
        if not name:
            continue
        val = os.getenv(name)
        if val is not None and str(val).strip() != "":
            return str(val).strip()
    return default


def _env_int(default: int, *names: str, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _env_float(default: float, *names: str, min_value: float | None = None, max_value: float | None = None) -> float:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid float for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _env_bool(default: bool, *names: str) -> bool:
    for name in names:
        if name and name in os.environ:
            return env_bool(name, default)
    return default


def _env_path(default: Path, *names: str) -> Path:
    raw = _env_raw(*names)
    if raw is None:
        return default.resolve()
    try:
        return Path(raw).expanduser().resolve()
    except (OSError, RuntimeError):
        logger.warning("Failed to resolve %s=%r, using %s", names[0] if names else "<unknown>", raw, default)
        return default.resolve()


# ---------------------------------------------------------------------------
# Library locations
# ---------------------------------------------------------------------------

ASSETS_ROOT = _env_path(Path.cwd() / "assets", "PHUB_ASSETS_PATH", "ASSETS_PATH")
THUMBNAILS_ROOT = _env_path(Path.cwd() / "thumbnails", "PHUB_THUMBNAILS_PATH", "THUMBNAILS_PATH")
INDEX_DIR_PATH = _env_path(Path.cwd() / "index", "PHUB_INDEX_DIR")
INDEX_DB = str(_env_path(INDEX_DIR_PATH / "photohub.db", "PHUB_INDEX_DB"))

# Logical prefix recorded in the catalog for files inside the managed library.
VIRTUAL_PREFIX = "/" + (_env_raw("PHUB_VIRTUAL_PREFIX", default="/assets") or "/assets").strip("/")

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

DB_TIMEOUT = _env_float(30.0, "PHUB_DB_TIMEOUT", min_value=1.0)
DB_MAX_CONNECTIONS = _env_int(4, "PHUB_DB_MAX_CONNECTIONS", min_value=1, max_value=64)

# ---------------------------------------------------------------------------
# Scan behaviour
# ---------------------------------------------------------------------------

HASH_CHUNK_SIZE = _env_int(1024 * 1024, "PHUB_HASH_CHUNK_SIZE", min_value=4096)
MTIME_TOLERANCE_S = _env_float(1.0, "PHUB_MTIME_TOLERANCE_SECONDS", min_value=0.0, max_value=60.0)
SKIP_HIDDEN = _env_bool(True, "PHUB_SKIP_HIDDEN")
# 0 means unbounded.
PROGRESS_QUEUE_SIZE = _env_int(0, "PHUB_PROGRESS_QUEUE_SIZE", min_value=0)
PROGRESS_FILE_INTERVAL = _env_int(10, "PHUB_PROGRESS_FILE_INTERVAL", min_value=1)
PROGRESS_ASSET_INTERVAL = _env_int(5, "PHUB_PROGRESS_ASSET_INTERVAL", min_value=1)

# ---------------------------------------------------------------------------
# Derived data
# ---------------------------------------------------------------------------

ML_MIN_PIXELS = _env_int(500_000, "PHUB_ML_MIN_PIXELS", min_value=0)
THUMBNAIL_JPEG_QUALITY = _env_int(85, "PHUB_THUMBNAIL_QUALITY", min_value=1, max_value=100)


def initialize_directories() -> None:
    """Create the thumbnail and index directories if they are missing."""
    for path in (THUMBNAILS_ROOT, INDEX_DIR_PATH, Path(INDEX_DB).parent):
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Could not create directory %s: %s", path, exc)
