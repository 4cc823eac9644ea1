"""
Value objects shared by the index pipeline.

Catalog rows are loaded into these explicitly by `CatalogStore`; nothing here
talks to the database.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from ...shared import MediaType, format_timestamp


@dataclass(frozen=True)
class DiscoveredFile:
    """One media file found on disk by the walker."""

    name: str
    full_path: Path
    size: int
    created: float
    modified: float
    extension: str
    media_type: MediaType


@dataclass
class Asset:
    id: Optional[int]
    path: str
    filename: str
    extension: str
    media_type: MediaType
    checksum: str
    size: int
    created_date: float
    modified_date: float
    scanned_at: float
    folder_id: Optional[int] = None
    owner_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Asset":
        return cls(
            id=int(row["id"]),
            path=str(row["path"]),
            filename=str(row["filename"]),
            extension=str(row.get("extension") or ""),
            media_type=MediaType(str(row["media_type"])),
            checksum=str(row["checksum"]),
            size=int(row["size"] or 0),
            created_date=float(row["created_date"] or 0.0),
            modified_date=float(row["modified_date"] or 0.0),
            scanned_at=float(row["scanned_at"] or 0.0),
            folder_id=row.get("folder_id"),
            owner_id=row.get("owner_id"),
        )


@dataclass(frozen=True)
class Folder:
    id: int
    path: str
    name: str
    parent_id: Optional[int]

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Folder":
        parent = row.get("parent_id")
        return cls(
            id=int(row["id"]),
            path=str(row["path"]),
            name=str(row["name"]),
            parent_id=int(parent) if parent is not None else None,
        )


class ThumbnailSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"

    @property
    def max_edge(self) -> int:
        return THUMBNAIL_EDGES[self]


THUMBNAIL_EDGES: dict[ThumbnailSize, int] = {
    ThumbnailSize.SMALL: 220,
    ThumbnailSize.MEDIUM: 640,
    ThumbnailSize.LARGE: 1280,
}


@dataclass(frozen=True)
class Thumbnail:
    asset_id: int
    size: ThumbnailSize
    file_path: str
    width: int
    height: int
    byte_size: int = 0
    format: str = "jpeg"


@dataclass
class Exif:
    width: Optional[int] = None
    height: Optional[int] = None
    date_taken: Optional[float] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    lens_model: Optional[str] = None
    orientation: Optional[int] = None
    iso: Optional[int] = None
    aperture: Optional[float] = None
    shutter_speed: Optional[str] = None
    focal_length: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None
    description: Optional[str] = None
    keywords: Optional[str] = None
    software: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def pixel_count(self) -> int:
        if not self.width or not self.height:
            return 0
        return int(self.width) * int(self.height)


class MlJobType(str, Enum):
    FACE_DETECTION = "face_detection"
    OBJECT_RECOGNITION = "object_recognition"


class MlJobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_ML_STATUSES = (MlJobStatus.PENDING.value, MlJobStatus.PROCESSING.value)


class ChangeKind(str, Enum):
    NEW = "new"
    UPDATED = "updated"
    MOVED = "moved"
    UNCHANGED = "unchanged"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass
class FileChange:
    """Per-file classification; `asset` is the catalog entry to persist or reconcile."""

    kind: ChangeKind
    file: DiscoveredFile
    virtual_path: str
    asset: Optional[Asset] = None
    previous_path: Optional[str] = None
    checksum: Optional[str] = None
    error: Optional[str] = None


class ScanPhase(str, Enum):
    DISCOVERING = "discovering"
    COMPARING = "comparing"
    PERSISTING_NEW = "persisting_new"
    DERIVING_METADATA = "deriving_metadata"
    PERSISTING_UPDATES = "persisting_updates"
    RECONCILING_THUMBNAILS = "reconciling_thumbnails"
    DEDUPLICATING = "deduplicating"
    REAPING_ASSETS = "reaping_assets"
    REAPING_FOLDERS = "reaping_folders"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class IndexStatistics:
    """Running counters of one scan."""

    total_files_found: int = 0
    new_files: int = 0
    updated_files: int = 0
    moved_files: int = 0
    skipped_unchanged: int = 0
    duplicates_skipped: int = 0
    orphaned_files_removed: int = 0
    orphaned_folders_removed: int = 0
    hashes_calculated: int = 0
    exif_extracted: int = 0
    media_tags_detected: int = 0
    ml_jobs_queued: int = 0
    thumbnails_generated: int = 0
    thumbnails_regenerated: int = 0
    duplicate_assets_removed: int = 0
    errors: int = 0
    started_at: float = 0.0
    completed_at: Optional[float] = None
    duration_seconds: float = 0.0

    def snapshot(self) -> "IndexStatistics":
        return IndexStatistics(**asdict(self))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = format_timestamp(self.started_at) if self.started_at else None
        data["completed_at"] = format_timestamp(self.completed_at) if self.completed_at else None
        data["duration_seconds"] = round(float(self.duration_seconds or 0.0), 3)
        return data

    def summary(self) -> str:
        return (
            f"Indexed {self.total_files_found} files: {self.new_files} new, {self.updated_files} updated, "
            f"{self.moved_files} moved, {self.orphaned_files_removed} removed, "
            f"{self.orphaned_folders_removed} folders removed, {self.duplicate_assets_removed} duplicates removed, "
            f"{self.thumbnails_generated} thumbnails generated, {self.thumbnails_regenerated} regenerated"
        )


@dataclass(frozen=True)
class IndexProgressUpdate:
    message: str
    percentage: float
    statistics: Optional[IndexStatistics] = None
    completed: bool = False
    phase: Optional[ScanPhase] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "percentage": round(float(self.percentage), 2),
            "statistics": self.statistics.to_dict() if self.statistics is not None else None,
            "completed": self.completed,
            "phase": self.phase.value if self.phase is not None else None,
        }
