"""
Derived data for catalogued assets: EXIF, media tags, thumbnails, ML jobs.

Collaborator failures are contained per asset: they are logged, counted in
`IndexStatistics.errors`, and the asset stays catalogued without that piece of
derived data. Catalog write failures (`CatalogError`) propagate so the scan
transaction rolls back.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Optional, TypeVar

from ...shared import MediaType, Result, get_logger
from .catalog_store import CatalogError, CatalogStore
from .collaborators import MetadataExtractor, MlJobEnqueuer, TagDetector, ThumbnailGenerator
from .models import Asset, Exif, IndexStatistics, MlJobType

logger = get_logger(__name__)

T = TypeVar("T")

ML_JOB_TYPES: tuple[MlJobType, ...] = (MlJobType.FACE_DETECTION, MlJobType.OBJECT_RECOGNITION)


class AssetEnricher:
    def __init__(
        self,
        catalog: CatalogStore,
        *,
        extractor: Optional[MetadataExtractor] = None,
        tag_detector: Optional[TagDetector] = None,
        thumbnails: Optional[ThumbnailGenerator] = None,
        ml_jobs: Optional[MlJobEnqueuer] = None,
    ) -> None:
        self.catalog = catalog
        self.extractor = extractor
        self.tag_detector = tag_detector
        self.thumbnails = thumbnails
        self.ml_jobs = ml_jobs

    async def _call(self, label: str, asset: Asset, awaitable: Awaitable[Result[T]], stats: IndexStatistics) -> Optional[T]:
        """Await one collaborator call; a failure is logged and counted, never raised."""
        try:
            result = await awaitable
        except (asyncio.CancelledError, CatalogError):
            raise
        except Exception as exc:
            stats.errors += 1
            logger.warning("%s failed for %s: %s", label, asset.path, exc)
            return None
        if not result.ok:
            stats.errors += 1
            logger.warning("%s failed for %s: %s", label, asset.path, result.error)
            return None
        return result.data

    # ------------------------------------------------------------------
    # New assets
    # ------------------------------------------------------------------

    async def derive_for_new(self, asset: Asset, file_path: Path, stats: IndexStatistics) -> None:
        """EXIF, then tags, then thumbnails, then ML jobs, for a freshly inserted asset."""
        if asset.id is None:
            raise CatalogError(f"Asset {asset.path} has no id; insert it before deriving metadata")

        exif = await self._extract_exif(asset, file_path, stats)
        if exif is not None:
            await self._detect_tags(asset, file_path, exif, stats)
        await self.generate_thumbnails(asset, file_path, stats)
        await self._enqueue_ml(asset, exif, stats)

    async def _extract_exif(self, asset: Asset, file_path: Path, stats: IndexStatistics) -> Optional[Exif]:
        if self.extractor is None:
            return None
        exif = await self._call("EXIF extraction", asset, self.extractor.extract(file_path, asset.media_type), stats)
        if exif is None:
            return None
        await self.catalog.save_exif(int(asset.id), exif)
        stats.exif_extracted += 1
        return exif

    async def _detect_tags(self, asset: Asset, file_path: Path, exif: Exif, stats: IndexStatistics) -> None:
        if self.tag_detector is None:
            return
        tags = await self._call("Tag detection", asset, self.tag_detector.detect(asset, file_path, exif), stats)
        if not tags:
            return
        await self.catalog.save_tags(int(asset.id), tags)
        stats.media_tags_detected += len(tags)

    async def generate_thumbnails(self, asset: Asset, file_path: Path, stats: IndexStatistics) -> int:
        if self.thumbnails is None or not self.thumbnails.supports(MediaType(asset.media_type)):
            return 0
        written = await self._call(
            "Thumbnail generation",
            asset,
            self.thumbnails.generate(int(asset.id), file_path, asset.media_type),
            stats,
        )
        if not written:
            return 0
        await self.catalog.replace_thumbnails(int(asset.id), written)
        stats.thumbnails_generated += len(written)
        return len(written)

    async def _enqueue_ml(self, asset: Asset, exif: Optional[Exif], stats: IndexStatistics) -> None:
        if self.ml_jobs is None:
            return
        try:
            wanted = self.ml_jobs.should_trigger(asset, exif)
        except Exception as exc:
            stats.errors += 1
            logger.warning("ML trigger check failed for %s: %s", asset.path, exc)
            return
        if not wanted:
            return
        for job_type in ML_JOB_TYPES:
            created = await self._call("ML enqueue", asset, self.ml_jobs.enqueue(int(asset.id), job_type), stats)
            if created:
                stats.ml_jobs_queued += 1

    # ------------------------------------------------------------------
    # Existing assets
    # ------------------------------------------------------------------

    async def reconcile_thumbnails(self, asset: Asset, file_path: Path, stats: IndexStatistics) -> int:
        """Regenerate exactly the sizes whose file is missing on disk."""
        if self.thumbnails is None or asset.id is None:
            return 0
        if not self.thumbnails.supports(MediaType(asset.media_type)):
            return 0
        try:
            missing = self.thumbnails.missing_sizes(int(asset.id))
        except OSError as exc:
            stats.errors += 1
            logger.warning("Thumbnail check failed for %s: %s", asset.path, exc)
            return 0
        if not missing:
            return 0
        written = await self._call(
            "Thumbnail regeneration",
            asset,
            self.thumbnails.generate(int(asset.id), file_path, asset.media_type, sizes=missing),
            stats,
        )
        if not written:
            return 0
        await self.catalog.replace_thumbnails(int(asset.id), written)
        stats.thumbnails_regenerated += len(written)
        logger.debug("Regenerated %s for %s", [t.size.value for t in written], asset.path)
        return len(written)

    def discard_thumbnails(self, asset_ids: Any) -> int:
        """Best-effort removal of thumbnail files; returns how many assets had files removed."""
        if self.thumbnails is None:
            return 0
        removed = 0
        for asset_id in asset_ids:
            try:
                if self.thumbnails.remove_for_asset(int(asset_id)):
                    removed += 1
            except OSError as exc:
                logger.warning("Failed to remove thumbnails for asset %s: %s", asset_id, exc)
        return removed
