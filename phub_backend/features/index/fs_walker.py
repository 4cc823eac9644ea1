"""
FileSystemWalker: recursive discovery of media files under a scan root.

Iteration is lazy; callers that need the whole listing drain `iter_files` on a
worker thread (`asyncio.to_thread`) so the event loop never blocks on disk.
"""
import os
from pathlib import Path
from typing import Iterator

from ...config import SKIP_HIDDEN
from ...shared import ErrorCode, Result, classify_file, get_logger
from .models import DiscoveredFile

logger = get_logger(__name__)

# Names created by operating systems and sync tools that never hold user media.
_SYSTEM_NAMES: frozenset[str] = frozenset(
    {"$recycle.bin", "system volume information", "@eadir", "lost+found", "thumbs.db", "desktop.ini"}
)

# Windows FILE_ATTRIBUTE_HIDDEN | FILE_ATTRIBUTE_SYSTEM
_WIN_HIDDEN_ATTRS = 0x2 | 0x4


def validate_scan_directory(dir_path: Path, directory: str) -> Result[Path] | None:
    if not str(directory or "").strip():
        return Result.Err(ErrorCode.INVALID_INPUT, "Directory path is required")
    try:
        if not dir_path.exists():
            return Result.Err(ErrorCode.NOT_FOUND, f"Directory does not exist: {directory}")
        if not dir_path.is_dir():
            return Result.Err(ErrorCode.INVALID_INPUT, f"Path is not a directory: {directory}")
    except (OSError, ValueError) as exc:
        return Result.Err(ErrorCode.INVALID_INPUT, f"Invalid directory path: {exc}")
    return None


class FileSystemWalker:
    """
    Walks a directory tree and yields `DiscoveredFile` records for supported media.

    Hidden and system entries are skipped; unreadable directories are logged and
    skipped. Every directory entered is recorded in `visited_dirs`.
    """

    def __init__(self, skip_hidden: bool = SKIP_HIDDEN) -> None:
        self._skip_hidden = bool(skip_hidden)
        self.visited_dirs: list[Path] = []
        self.skipped_dirs: int = 0

    def is_hidden(self, entry: os.DirEntry) -> bool:
        if not self._skip_hidden:
            return False
        name = entry.name
        if name.startswith(".") or name.lower() in _SYSTEM_NAMES:
            return True
        try:
            attrs = getattr(entry.stat(follow_symlinks=False), "st_file_attributes", 0)
        except OSError:
            return False
        return bool(attrs & _WIN_HIDDEN_ATTRS)

    def iter_files(self, directory: Path) -> Iterator[DiscoveredFile]:
        """
        Generator: iterate over all media files below `directory` (streaming).

        Symlinked directories are not followed; symlinks to files are indexed.
        """
        self.visited_dirs = []
        self.skipped_dirs = 0
        stack: list[Path] = [directory]
        while stack:
            current = stack.pop()
            try:
                with os.scandir(current) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as exc:
                self.skipped_dirs += 1
                logger.warning("Skipping unreadable directory %s: %s", current, exc)
                continue
            self.visited_dirs.append(current)
            subdirs: list[Path] = []
            for entry in entries:
                if self.is_hidden(entry):
                    continue
                try:
                    if entry.is_dir(follow_symlinks=False):
                        subdirs.append(Path(entry.path))
                        continue
                except OSError:
                    continue
                discovered = self._candidate(entry)
                if discovered is not None:
                    yield discovered
            # Reversed so directories pop in name order.
            stack.extend(reversed(subdirs))

    @staticmethod
    def _candidate(entry: os.DirEntry) -> DiscoveredFile | None:
        media_type = classify_file(entry.name)
        if media_type is None:
            return None
        try:
            if not entry.is_file(follow_symlinks=True):
                return None
            st = entry.stat(follow_symlinks=True)
        except OSError:
            return None
        # st_birthtime where the platform has it; st_ctime otherwise.
        created = float(getattr(st, "st_birthtime", 0.0) or st.st_ctime)
        return DiscoveredFile(
            name=entry.name,
            full_path=Path(entry.path),
            size=int(st.st_size),
            created=created,
            modified=float(st.st_mtime),
            extension=os.path.splitext(entry.name)[1].lower(),
            media_type=media_type,
        )

    def scan_directory(self, directory: str) -> Result[list[DiscoveredFile]]:
        """Validate `directory` and return every discovered file."""
        dir_path = Path(str(directory or "").strip() or ".")
        validation_error = validate_scan_directory(dir_path, directory)
        if validation_error is not None:
            return validation_error
        files = list(self.iter_files(dir_path))
        logger.debug("Discovered %s files in %s directories", len(files), len(self.visited_dirs))
        return Result.Ok(files, visited_dirs=list(self.visited_dirs), skipped_dirs=self.skipped_dirs)
