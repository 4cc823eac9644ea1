"""
Per-file change classification: New, Updated, Moved, Unchanged.

The size/mtime heuristic is tried first; the file is only hashed when the
heuristic cannot prove it unchanged.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Awaitable, Callable, Iterable, Optional

from ...config import MTIME_TOLERANCE_S
from ...path_utils import VirtualPathResolver
from ...shared import get_logger
from .file_hash import acompute_file_hash, has_file_changed
from .models import Asset, ChangeKind, DiscoveredFile, FileChange

logger = get_logger(__name__)

HashFunc = Callable[..., Awaitable[str]]


def _recency_key(asset: Asset) -> tuple[float, int]:
    return (-float(asset.scanned_at or 0.0), int(asset.id or 0))


class ChangeDetector:
    """
    Classifies discovered files against the catalog as loaded at scan start.

    One instance serves one scan. Classification mutates the matched catalog
    entry in memory (path, checksum, size, timestamps); the synchronizer persists it.

    A checksum match under another path is a move only when nothing is catalogued
    at the file's own path, the matched entry's path was not discovered in this
    scan, and no other file already claimed that entry. A file matching an entry
    that is still present on disk is a copy; it is reported as DUPLICATE and
    revisited by `resolve_deferred()` once every file has been classified.
    """

    def __init__(
        self,
        assets: Iterable[Asset],
        discovered_paths: Iterable[str],
        resolver: VirtualPathResolver,
        *,
        hash_file: HashFunc = acompute_file_hash,
        tolerance: float = MTIME_TOLERANCE_S,
        scanned_at: float = 0.0,
    ) -> None:
        self.resolver = resolver
        self._hash_file = hash_file
        self._tolerance = float(tolerance)
        self._scanned_at = float(scanned_at)
        self._discovered = set(discovered_paths)
        self._claimed: set[int] = set()
        self._seen_paths: set[str] = set()
        self.by_path: dict[str, Asset] = {}
        self.by_checksum: dict[str, list[Asset]] = defaultdict(list)
        for asset in assets:
            self.by_path[asset.path] = asset
            self.by_checksum[asset.checksum].append(asset)
        for group in self.by_checksum.values():
            group.sort(key=_recency_key)
        self.deferred: list[FileChange] = []

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------

    def _reindex_checksum(self, asset: Asset, new_checksum: str) -> None:
        old = self.by_checksum.get(asset.checksum)
        if old is not None:
            old[:] = [a for a in old if a is not asset]
            if not old:
                del self.by_checksum[asset.checksum]
        asset.checksum = new_checksum
        group = self.by_checksum[new_checksum]
        group.append(asset)
        group.sort(key=_recency_key)

    def _move_candidate(self, checksum: str) -> Optional[Asset]:
        for candidate in self.by_checksum.get(checksum, ()):
            if candidate.id in self._claimed:
                continue
            if candidate.path in self._discovered:
                continue
            return candidate
        return None

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    async def classify(self, file: DiscoveredFile) -> FileChange:
        virtual_path = self.resolver.virtualize(file.full_path)
        if virtual_path in self._seen_paths:
            # Two discovered entries mapping to one catalog path; only the first is indexed.
            logger.warning("Skipping %s: catalog path already taken in this scan", file.full_path)
            return FileChange(ChangeKind.DUPLICATE, file, virtual_path)
        self._seen_paths.add(virtual_path)
        existing = self.by_path.get(virtual_path)

        if existing is not None and not has_file_changed(existing, file, self._tolerance):
            self._claimed.add(int(existing.id or 0))
            return FileChange(ChangeKind.UNCHANGED, file, virtual_path, asset=existing)

        try:
            checksum = await self._hash_file(file.full_path)
        except OSError as exc:
            logger.warning("Failed to hash %s: %s", virtual_path, exc)
            return FileChange(ChangeKind.FAILED, file, virtual_path, asset=existing, error=str(exc))

        if existing is not None:
            self._claimed.add(int(existing.id or 0))
            if existing.checksum != checksum:
                self._reindex_checksum(existing, checksum)
            existing.size = int(file.size)
            existing.modified_date = float(file.modified)
            existing.scanned_at = self._scanned_at
            return FileChange(ChangeKind.UPDATED, file, virtual_path, asset=existing, checksum=checksum)

        candidate = self._move_candidate(checksum)
        if candidate is not None:
            previous_path = candidate.path
            self._claimed.add(int(candidate.id or 0))
            del self.by_path[previous_path]
            self._apply_file(candidate, file, virtual_path)
            self.by_path[virtual_path] = candidate
            return FileChange(
                ChangeKind.MOVED, file, virtual_path, asset=candidate, previous_path=previous_path, checksum=checksum
            )

        if self.by_checksum.get(checksum):
            change = FileChange(ChangeKind.DUPLICATE, file, virtual_path, checksum=checksum)
            self.deferred.append(change)
            return change

        return self._new_change(file, virtual_path, checksum)

    def resolve_deferred(self) -> list[FileChange]:
        """
        Re-check copies reported as DUPLICATE.

        A copy whose original changed content later in the same scan no longer has
        a catalogued twin; it is returned as NEW. Copies of entries that still hold
        the checksum stay skipped.
        """
        promoted: list[FileChange] = []
        for change in self.deferred:
            checksum = str(change.checksum or "")
            if self.by_checksum.get(checksum):
                continue
            promoted.append(self._new_change(change.file, change.virtual_path, checksum))
        self.deferred = []
        return promoted

    def _apply_file(self, asset: Asset, file: DiscoveredFile, virtual_path: str) -> None:
        asset.path = virtual_path
        asset.filename = file.name
        asset.extension = file.extension
        asset.size = int(file.size)
        asset.created_date = float(file.created)
        asset.modified_date = float(file.modified)
        asset.scanned_at = self._scanned_at

    def _new_change(self, file: DiscoveredFile, virtual_path: str, checksum: str) -> FileChange:
        asset = Asset(
            id=None,
            path=virtual_path,
            filename=file.name,
            extension=file.extension,
            media_type=file.media_type,
            checksum=checksum,
            size=int(file.size),
            created_date=float(file.created),
            modified_date=float(file.modified),
            scanned_at=self._scanned_at,
        )
        return FileChange(ChangeKind.NEW, file, virtual_path, asset=asset, checksum=checksum)
