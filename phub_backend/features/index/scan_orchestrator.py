"""
CatalogSynchronizer: drives one scan from discovery to commit.

Phase order: discovery, comparison, insert new assets, derive their metadata,
persist updates and moves, reconcile thumbnails of existing assets, resolve
duplicates, reap orphaned assets, reap orphaned folders, commit. Everything
from comparison on runs in one `BEGIN IMMEDIATE` transaction.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional
from uuid import uuid4

from ...adapters.db.sqlite import Sqlite
from ...config import PROGRESS_ASSET_INTERVAL, PROGRESS_FILE_INTERVAL
from ...path_utils import VirtualPathResolver
from ...shared import (
    ErrorCode,
    Result,
    get_logger,
    log_structured,
    log_success,
    now,
    sanitize_error_message,
    scan_id_var,
)
from ..duplicates.service import DuplicateResolver
from .catalog_store import CatalogError, CatalogStore
from .change_detector import ChangeDetector, HashFunc
from .enricher import AssetEnricher
from .file_hash import acompute_file_hash
from .folder_manager import FolderHierarchy
from .fs_walker import FileSystemWalker
from .models import (
    ChangeKind,
    DiscoveredFile,
    FileChange,
    IndexProgressUpdate,
    IndexStatistics,
    ScanPhase,
)
from .reaper import OrphanReaper

logger = get_logger(__name__)

ProgressSink = Callable[[IndexProgressUpdate], None]


class ScanCancelled(Exception):
    """Raised inside the scan transaction when the caller requested cancellation."""


class ProgressReporter:
    """Pushes progress events to an optional sink without ever failing the scan."""

    def __init__(self, sink: Optional[ProgressSink], stats: IndexStatistics) -> None:
        self._sink = sink
        self._stats = stats
        self.percentage = 0.0
        self.phase: ScanPhase = ScanPhase.DISCOVERING

    def emit(self, percentage: float, message: str, phase: Optional[ScanPhase] = None, *, completed: bool = False) -> None:
        self.percentage = max(0.0, min(100.0, float(percentage)))
        if phase is not None:
            self.phase = phase
        if self._sink is None:
            return
        update = IndexProgressUpdate(
            message=message,
            percentage=self.percentage,
            statistics=self._stats.snapshot(),
            completed=completed,
            phase=self.phase,
        )
        self._deliver(update)

    def fail(self, message: str) -> None:
        self.phase = ScanPhase.FAILED
        if self._sink is None:
            return
        self._deliver(
            IndexProgressUpdate(
                message=message,
                percentage=self.percentage,
                statistics=None,
                completed=True,
                phase=ScanPhase.FAILED,
            )
        )

    def _deliver(self, update: IndexProgressUpdate) -> None:
        try:
            self._sink(update)
        except Exception as exc:
            logger.warning("Progress sink rejected update at %.0f%%: %s", update.percentage, exc)

    def step(self, done: int, total: int, start: float, end: float, interval: int, message: str) -> None:
        """Emit at every `interval` items and at the last one, interpolating start..end."""
        if total <= 0:
            return
        if done % max(1, interval) != 0 and done != total:
            return
        self.emit(start + (end - start) * (done / total), f"{message} ({done}/{total})")


@dataclass
class _ScanState:
    """Per-scan working set owned by one `run()` call."""

    root: Path
    root_virtual: str
    files: list[DiscoveredFile]
    discovered_paths: set[str]
    visited_folder_paths: set[str]
    created_ids: list[int] = field(default_factory=list)
    deleted_ids: list[int] = field(default_factory=list)


class CatalogSynchronizer:
    def __init__(
        self,
        db: Sqlite,
        catalog: CatalogStore,
        resolver: VirtualPathResolver,
        enricher: AssetEnricher,
        *,
        duplicates: Optional[DuplicateResolver] = None,
        reaper: Optional[OrphanReaper] = None,
        hash_file: HashFunc = acompute_file_hash,
        walker_factory: Callable[[], FileSystemWalker] = FileSystemWalker,
    ) -> None:
        self.db = db
        self.catalog = catalog
        self.resolver = resolver
        self.enricher = enricher
        self.duplicates = duplicates or DuplicateResolver(catalog, resolver)
        self.reaper = reaper or OrphanReaper(catalog)
        self._hash_file = hash_file
        self._walker_factory = walker_factory
        self._scan_lock = asyncio.Lock()
        self._current_scan_id: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._scan_lock.locked()

    @property
    def current_scan_id(self) -> Optional[str]:
        return self._current_scan_id

    async def run(
        self,
        root: Optional[str | Path] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        progress: Optional[ProgressSink] = None,
    ) -> Result[IndexStatistics]:
        """
        Synchronize the catalog with the files under `root` (the library root by default).

        Returns the final statistics, or an error result:
        NOT_FOUND / INVALID_INPUT for a bad root, SCAN_IN_PROGRESS when this
        synchronizer is already scanning, CANCELLED when `cancel_event` was set,
        DB_ERROR when the transaction failed. Error paths leave the catalog untouched.
        """
        if self._scan_lock.locked():
            reporter = ProgressReporter(progress, IndexStatistics())
            reporter.fail("A scan is already running")
            return Result.Err(ErrorCode.SCAN_IN_PROGRESS, "A scan is already running", scan_id=self._current_scan_id)

        async with self._scan_lock:
            scan_id = uuid4().hex
            self._current_scan_id = scan_id
            token = scan_id_var.set(scan_id)
            try:
                result = await self._run_locked(root, cancel_event, progress)
                result.meta.setdefault("scan_id", scan_id)
                return result
            finally:
                scan_id_var.reset(token)
                self._current_scan_id = None

    # ------------------------------------------------------------------
    # Scan driver
    # ------------------------------------------------------------------

    async def _run_locked(
        self,
        root: Optional[str | Path],
        cancel_event: Optional[asyncio.Event],
        progress: Optional[ProgressSink],
    ) -> Result[IndexStatistics]:
        stats = IndexStatistics(started_at=now())
        started = time.perf_counter()
        reporter = ProgressReporter(progress, stats)
        root_str = str(root) if root is not None else str(self.resolver.library_root)

        log_structured(logger, logging.INFO, "Starting catalog scan", root=root_str)
        reporter.emit(0, "Starting scan", ScanPhase.DISCOVERING)

        walker = self._walker_factory()
        discovered = await asyncio.to_thread(walker.scan_directory, root_str)
        if not discovered.ok:
            reporter.fail(str(discovered.error))
            logger.warning("Scan aborted: %s", discovered.error)
            return Result.Err(discovered.code, str(discovered.error))

        files: list[DiscoveredFile] = list(discovered.data or [])
        stats.total_files_found = len(files)
        root_path = Path(root_str)
        state = _ScanState(
            root=root_path,
            root_virtual=self.resolver.virtualize(root_path),
            files=files,
            discovered_paths={self.resolver.virtualize(f.full_path) for f in files},
            visited_folder_paths={self.resolver.virtualize(p) for p in discovered.meta.get("visited_dirs", [])},
        )
        reporter.emit(10, f"Found {len(files)} media files", ScanPhase.COMPARING)

        try:
            async with self.db.atransaction(mode="immediate") as tx:
                if not tx.ok:
                    raise CatalogError(str(tx.error or "Failed to begin transaction"))
                await self._synchronize(state, stats, reporter, cancel_event)
            if not tx.ok:
                raise CatalogError(str(tx.error or "Commit failed"))
        except ScanCancelled:
            self._discard_created(state)
            reporter.fail("Scan cancelled")
            logger.info("Scan cancelled; catalog changes rolled back")
            return Result.Err(ErrorCode.CANCELLED, "Scan cancelled")
        except asyncio.CancelledError:
            self._discard_created(state)
            logger.info("Scan task cancelled; catalog changes rolled back")
            raise
        except CatalogError as exc:
            self._discard_created(state)
            message = sanitize_error_message(exc, "Catalog update failed")
            reporter.fail(f"Scan failed: {message}")
            logger.error("Scan failed, rolled back: %s", exc)
            return Result.Err(ErrorCode.DB_ERROR, message)
        except Exception as exc:
            self._discard_created(state)
            message = sanitize_error_message(exc, "Scan failed")
            reporter.fail(f"Scan failed: {message}")
            logger.exception("Scan failed, rolled back")
            return Result.Err(ErrorCode.DB_ERROR, message)

        removed = self.enricher.discard_thumbnails(state.deleted_ids)
        if removed:
            logger.debug("Removed thumbnail files of %s deleted assets", removed)

        stats.completed_at = now()
        stats.duration_seconds = time.perf_counter() - started
        summary = stats.summary()
        reporter.emit(100, f"Scan completed. {summary}", ScanPhase.COMPLETED, completed=True)
        log_success(logger, f"{summary} in {stats.duration_seconds:.2f}s")
        log_structured(logger, logging.INFO, "Catalog scan finished", **stats.to_dict())
        return Result.Ok(stats)

    async def _synchronize(
        self,
        state: _ScanState,
        stats: IndexStatistics,
        reporter: ProgressReporter,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        changes = await self._compare(state, stats, reporter, cancel_event)
        new = [c for c in changes if c.kind == ChangeKind.NEW]
        modified = [c for c in changes if c.kind in (ChangeKind.UPDATED, ChangeKind.MOVED)]
        existing = [c for c in changes if c.kind in (ChangeKind.UPDATED, ChangeKind.MOVED, ChangeKind.UNCHANGED)]

        reporter.emit(50, f"Persisting {len(new)} new assets", ScanPhase.PERSISTING_NEW)
        for change in new:
            self._check_cancel(cancel_event)
            asset = await self.catalog.insert_asset(change.asset)
            state.created_ids.append(int(asset.id))

        reporter.emit(60, "Extracting metadata and thumbnails", ScanPhase.DERIVING_METADATA)
        for i, change in enumerate(new, 1):
            self._check_cancel(cancel_event)
            await self.enricher.derive_for_new(change.asset, change.file.full_path, stats)
            reporter.step(i, len(new), 60, 75, PROGRESS_ASSET_INTERVAL, "Processed new assets")

        reporter.emit(75, f"Updating {len(modified)} changed assets", ScanPhase.PERSISTING_UPDATES)
        for i, change in enumerate(modified, 1):
            self._check_cancel(cancel_event)
            await self.catalog.update_asset(change.asset)
            if change.kind == ChangeKind.MOVED:
                logger.debug("Moved %s -> %s", change.previous_path, change.virtual_path)
            reporter.step(i, len(modified), 75, 85, PROGRESS_ASSET_INTERVAL, "Updated assets")

        reporter.emit(85, "Verifying thumbnails", ScanPhase.RECONCILING_THUMBNAILS)
        for i, change in enumerate(existing, 1):
            self._check_cancel(cancel_event)
            await self.enricher.reconcile_thumbnails(change.asset, change.file.full_path, stats)
            reporter.step(i, len(existing), 85, 95, PROGRESS_FILE_INTERVAL, "Verified assets")

        self._check_cancel(cancel_event)
        reporter.emit(95, "Resolving duplicates", ScanPhase.DEDUPLICATING)
        resolution = await self.duplicates.resolve()
        stats.duplicate_assets_removed = len(resolution.removed_ids)
        state.deleted_ids.extend(resolution.removed_ids)

        self._check_cancel(cancel_event)
        reporter.emit(97, "Removing orphaned assets", ScanPhase.REAPING_ASSETS)
        reaped = await self.reaper.reap_assets(state.discovered_paths, scope=state.root_virtual)
        stats.orphaned_files_removed = len(reaped)
        state.deleted_ids.extend(reaped)

        self._check_cancel(cancel_event)
        reporter.emit(98, "Removing orphaned folders", ScanPhase.REAPING_FOLDERS)
        folders = await self.reaper.reap_folders(state.visited_folder_paths, scope=state.root_virtual)
        stats.orphaned_folders_removed = len(folders)
        self._check_cancel(cancel_event)

    async def _compare(
        self,
        state: _ScanState,
        stats: IndexStatistics,
        reporter: ProgressReporter,
        cancel_event: Optional[asyncio.Event],
    ) -> list[FileChange]:
        detector = ChangeDetector(
            await self.catalog.load_assets(),
            state.discovered_paths,
            self.resolver,
            hash_file=self._hash_file,
            scanned_at=stats.started_at,
        )
        hierarchy = FolderHierarchy(self.catalog)
        changes: list[FileChange] = []
        total = len(state.files)
        for i, file in enumerate(state.files, 1):
            self._check_cancel(cancel_event)
            change = await detector.classify(file)
            if change.checksum is not None:
                stats.hashes_calculated += 1
            await self._record(change, stats, hierarchy)
            changes.append(change)
            reporter.step(i, total, 10, 50, PROGRESS_FILE_INTERVAL, "Compared files")

        for change in detector.resolve_deferred():
            stats.duplicates_skipped -= 1
            await self._record(change, stats, hierarchy)
            changes.append(change)
        return changes

    async def _record(self, change: FileChange, stats: IndexStatistics, hierarchy: FolderHierarchy) -> None:
        kind = change.kind
        if kind == ChangeKind.UNCHANGED:
            stats.skipped_unchanged += 1
            return
        if kind == ChangeKind.FAILED:
            stats.errors += 1
            return
        if kind == ChangeKind.DUPLICATE:
            stats.duplicates_skipped += 1
            return
        if kind == ChangeKind.NEW:
            stats.new_files += 1
        elif kind == ChangeKind.UPDATED:
            stats.updated_files += 1
        elif kind == ChangeKind.MOVED:
            stats.moved_files += 1
        folder = await hierarchy.ensure(self.resolver.virtual_dir_of(change.virtual_path))
        if change.asset is not None:
            change.asset.folder_id = folder.id if folder is not None else None

    @staticmethod
    def _check_cancel(cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ScanCancelled()

    def _discard_created(self, state: _ScanState) -> None:
        """Remove thumbnail files written for assets whose rows were rolled back."""
        if state.created_ids:
            removed = self.enricher.discard_thumbnails(state.created_ids)
            logger.debug("Discarded thumbnails of %s rolled-back assets", removed)
