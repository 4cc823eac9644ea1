"""
Path normalization and virtual <-> physical path mapping.

Files inside the managed library are recorded in the catalog under a fixed
logical prefix (``/assets/...``) so the library can be remounted elsewhere
without invalidating the catalog.
"""

from __future__ import annotations

import os
import posixpath
from pathlib import Path

from .config import ASSETS_ROOT, VIRTUAL_PREFIX


def normalize_path(value: str) -> Path | None:
    if not value:
        return None
    if "\x00" in value:
        return None
    try:
        return Path(value).expanduser().resolve(strict=False)
    except (OSError, ValueError):
        return None


def normalize_folder_path(value: str | None) -> str:
    """
    Canonical catalog key for a directory: forward slashes, no trailing slash.

    Returns "" for empty input and for the filesystem root, which has no folder row.
    """
    if not value:
        return ""
    cleaned = str(value).replace("\\", "/")
    while "//" in cleaned:
        cleaned = cleaned.replace("//", "/")
    return cleaned.rstrip("/")


def parent_folder_path(folder_path: str) -> str:
    """Parent of a normalized folder path, or "" when there is none."""
    normalized = normalize_folder_path(folder_path)
    if not normalized:
        return ""
    parent = normalize_folder_path(posixpath.dirname(normalized))
    if parent == normalized:
        return ""
    return parent


def folder_depth(folder_path: str) -> int:
    return normalize_folder_path(folder_path).count("/")


def _canonical_path(path: Path) -> Path:
    """Absolute path with symlinked ancestors resolved; a file symlink keeps its own name."""
    full = Path(os.path.abspath(str(path)))
    try:
        if full.is_symlink() and not full.is_dir():
            return full.parent.resolve(strict=False) / full.name
        return full.resolve(strict=False)
    except (OSError, RuntimeError):
        return full


class VirtualPathResolver:
    """Maps physical paths under the library root to virtual catalog paths and back."""

    def __init__(self, library_root: Path | str | None = None, prefix: str | None = None) -> None:
        root = Path(library_root) if library_root is not None else ASSETS_ROOT
        self.library_root = root.expanduser().resolve(strict=False)
        self.prefix = "/" + str(prefix if prefix is not None else VIRTUAL_PREFIX).strip("/")

    def is_virtual(self, value: str) -> bool:
        """True for the prefix itself or a path below it; `/assets2` is not virtual."""
        normalized = str(value or "").replace("\\", "/")
        return normalized == self.prefix or normalized.startswith(self.prefix + "/")

    def is_managed(self, physical_path: Path | str) -> bool:
        canonical = _canonical_path(Path(physical_path))
        return canonical == self.library_root or canonical.is_relative_to(self.library_root)

    def virtualize(self, physical_path: Path | str) -> str:
        """Physical path -> catalog path (`/assets/<rel>` inside the library)."""
        if not physical_path:
            return ""
        full = Path(os.path.abspath(str(physical_path)))
        canonical = _canonical_path(full)
        if not (canonical == self.library_root or canonical.is_relative_to(self.library_root)):
            return normalize_folder_path(str(full))
        rel = canonical.relative_to(self.library_root).as_posix()
        if rel in ("", "."):
            return self.prefix
        return f"{self.prefix}/{rel.lstrip('/')}"

    def resolve(self, virtual_path: str) -> Path:
        """Catalog path -> physical path. Paths outside the prefix are returned as-is."""
        normalized = str(virtual_path or "").replace("\\", "/")
        if normalized == self.prefix:
            return self.library_root
        if self.is_virtual(normalized):
            rel = normalized[len(self.prefix) + 1:]
            return self.library_root.joinpath(*[p for p in rel.split("/") if p])
        return Path(virtual_path)

    def virtual_dir_of(self, virtual_path: str) -> str:
        return parent_folder_path(virtual_path)
