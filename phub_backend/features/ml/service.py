"""
ML job queue.

Jobs are rows in `asset_ml_jobs`; workers that process them live outside this
package. Enqueue is idempotent per (asset, job type) while a job is active.
"""
from __future__ import annotations

from typing import Any, Optional

from ...adapters.db.sqlite import Sqlite
from ...config import ML_MIN_PIXELS
from ...shared import ErrorCode, MediaType, Result, get_logger, now
from ..index.models import ACTIVE_ML_STATUSES, Asset, Exif, MlJobStatus, MlJobType

logger = get_logger(__name__)

# Job types queued for every qualifying new image.
DEFAULT_JOB_TYPES: tuple[MlJobType, ...] = (MlJobType.FACE_DETECTION, MlJobType.OBJECT_RECOGNITION)


class MlJobService:
    def __init__(self, db: Sqlite, min_pixels: int = ML_MIN_PIXELS) -> None:
        self.db = db
        self.min_pixels = int(min_pixels)

    def should_trigger(self, asset: Asset, exif: Optional[Exif]) -> bool:
        if MediaType(asset.media_type) != MediaType.IMAGE or exif is None:
            return False
        return exif.pixel_count > self.min_pixels

    async def enqueue(self, asset_id: int, job_type: MlJobType) -> Result[bool]:
        """Queue a pending job; `data` is False when an active job already existed."""
        job = MlJobType(job_type).value
        res = await self.db.aexecute(
            """
            INSERT INTO asset_ml_jobs (asset_id, job_type, status, created_at)
            SELECT ?, ?, ?, ?
            WHERE NOT EXISTS (
                SELECT 1 FROM asset_ml_jobs
                WHERE asset_id = ? AND job_type = ? AND status IN (?, ?)
            )
            """,
            (int(asset_id), job, MlJobStatus.PENDING.value, now(), int(asset_id), job, *ACTIVE_ML_STATUSES),
        )
        if not res.ok:
            return Result.Err(ErrorCode.ML_ENQUEUE_FAILED, res.error or "Failed to enqueue ML job")
        created = int(res.meta.get("rowcount") or 0) > 0
        if created:
            logger.info("ML job enqueued: asset_id=%s job_type=%s", asset_id, job)
        return Result.Ok(created)

    async def pending_jobs(self) -> Result[list[dict[str, Any]]]:
        return await self.db.aquery(
            "SELECT id, asset_id, job_type, status, created_at FROM asset_ml_jobs "
            "WHERE status = ? ORDER BY created_at, id",
            (MlJobStatus.PENDING.value,),
        )
