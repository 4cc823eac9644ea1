"""
Dependency injection - builds services.
Simple, debug-friendly DI without framework magic.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from .adapters.db.schema import migrate_schema
from .adapters.db.sqlite import Sqlite
from .config import (
    ASSETS_ROOT,
    DB_MAX_CONNECTIONS,
    DB_TIMEOUT,
    INDEX_DB,
    THUMBNAILS_ROOT,
    initialize_directories,
)
from .features.duplicates.service import DuplicateResolver
from .features.index.catalog_store import CatalogStore
from .features.index.enricher import AssetEnricher
from .features.index.reaper import OrphanReaper
from .features.index.scan_orchestrator import CatalogSynchronizer
from .features.metadata.exif import PillowExifExtractor
from .features.ml.service import MlJobService
from .features.tags.recognition import MediaRecognitionService
from .features.thumbnails.service import PillowThumbnailGenerator
from .path_utils import VirtualPathResolver
from .shared import Result, get_logger, log_success

logger = get_logger(__name__)


def _resolve_db_path(db_path: str | None) -> str:
    return db_path if db_path is not None else INDEX_DB


def _init_db_or_error(db_path: str) -> Result[Sqlite]:
    logger.info("Initializing database: %s", db_path)
    try:
        return Result.Ok(Sqlite(db_path, max_connections=DB_MAX_CONNECTIONS, timeout=DB_TIMEOUT))
    except OSError as exc:
        logger.error("Failed to initialize database: %s", exc)
        return Result.Err("DB_ERROR", f"Failed to initialize database: {exc}")


async def _migrate_db_or_error(db: Sqlite) -> Result[bool]:
    migrate_result = await migrate_schema(db)
    if not migrate_result.ok:
        logger.error("Schema migration failed: %s", migrate_result.error)
        return Result.Err(migrate_result.code or "DB_ERROR", f"Failed to initialize database: {migrate_result.error}")
    return Result.Ok(True)


async def build_services(
    db_path: str | None = None,
    *,
    library_root: Optional[Path | str] = None,
    thumbnails_root: Optional[Path | str] = None,
) -> Result[dict]:
    """
    Build all services (DI container).

    Args:
        db_path: Path to SQLite database (default: from config.INDEX_DB)
        library_root: Managed library root (default: config.ASSETS_ROOT)
        thumbnails_root: Thumbnail directory (default: config.THUMBNAILS_ROOT)

    Returns:
        Result[dict] of service instances
    """
    logger.info("Building services...")
    if db_path is None or thumbnails_root is None:
        initialize_directories()

    db_res = _init_db_or_error(_resolve_db_path(db_path))
    if not db_res.ok or db_res.data is None:
        return Result.Err(db_res.code or "DB_ERROR", db_res.error or "Failed to initialize database")
    db = db_res.data

    migrate_result = await _migrate_db_or_error(db)
    if not migrate_result.ok:
        await db.aclose()
        return migrate_result  # type: ignore[return-value]

    resolver = VirtualPathResolver(library_root if library_root is not None else ASSETS_ROOT)
    catalog = CatalogStore(db)
    extractor = PillowExifExtractor()
    recognition = MediaRecognitionService()
    thumbnails = PillowThumbnailGenerator(Path(thumbnails_root) if thumbnails_root is not None else THUMBNAILS_ROOT)
    ml_jobs = MlJobService(db)

    enricher = AssetEnricher(
        catalog,
        extractor=extractor,
        tag_detector=recognition,
        thumbnails=thumbnails,
        ml_jobs=ml_jobs,
    )
    synchronizer = CatalogSynchronizer(
        db,
        catalog,
        resolver,
        enricher,
        duplicates=DuplicateResolver(catalog, resolver),
        reaper=OrphanReaper(catalog),
    )

    services = {
        "db": db,
        "catalog": catalog,
        "resolver": resolver,
        "exif": extractor,
        "recognition": recognition,
        "thumbnails": thumbnails,
        "ml_jobs": ml_jobs,
        "enricher": enricher,
        "synchronizer": synchronizer,
    }
    log_success(logger, "All services initialized")
    return Result.Ok(services)
