"""
Database schema and migrations.
"""
import hashlib
import re

from ...shared import Result, get_logger, log_success

logger = get_logger(__name__)

CURRENT_SCHEMA_VERSION = 2
# Schema version history (high-level):
# 1: assets, folders, permissions, thumbnails, exif
# 2: asset tags and ML job queue

SCHEMA_V1 = """
-- Metadata table for schema versioning
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Folder hierarchy (virtual directory paths, root has parent_id NULL)
CREATE TABLE IF NOT EXISTS folders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    path TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    parent_id INTEGER,
    created_at REAL NOT NULL,
    FOREIGN KEY (parent_id) REFERENCES folders(id) ON DELETE RESTRICT
);

-- Access grants; a folder holding any grant is never reaped
CREATE TABLE IF NOT EXISTS folder_permissions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    folder_id INTEGER NOT NULL,
    principal TEXT NOT NULL,
    access TEXT NOT NULL DEFAULT 'read',
    FOREIGN KEY (folder_id) REFERENCES folders(id) ON DELETE CASCADE
);

-- Assets table
CREATE TABLE IF NOT EXISTS assets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    path TEXT NOT NULL UNIQUE,  -- virtual path inside the library, physical otherwise
    filename TEXT NOT NULL,
    extension TEXT NOT NULL,
    media_type TEXT NOT NULL,  -- image, video
    checksum TEXT NOT NULL,  -- lowercase hex sha256 of the content
    size INTEGER NOT NULL,
    created_date REAL NOT NULL,
    modified_date REAL NOT NULL,
    scanned_at REAL NOT NULL,
    folder_id INTEGER,
    owner_id TEXT,
    FOREIGN KEY (folder_id) REFERENCES folders(id) ON DELETE SET NULL
);

-- Derived data, removed together with the owning asset
CREATE TABLE IF NOT EXISTS asset_thumbnails (
    asset_id INTEGER NOT NULL,
    size TEXT NOT NULL,  -- small, medium, large
    file_path TEXT NOT NULL,
    width INTEGER NOT NULL,
    height INTEGER NOT NULL,
    byte_size INTEGER NOT NULL DEFAULT 0,
    format TEXT NOT NULL DEFAULT 'jpeg',
    PRIMARY KEY (asset_id, size),
    FOREIGN KEY (asset_id) REFERENCES assets(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS asset_exif (
    asset_id INTEGER PRIMARY KEY,
    width INTEGER,
    height INTEGER,
    date_taken REAL,
    camera_make TEXT,
    camera_model TEXT,
    lens_model TEXT,
    orientation INTEGER,
    iso INTEGER,
    aperture REAL,
    shutter_speed TEXT,
    focal_length REAL,
    latitude REAL,
    longitude REAL,
    altitude REAL,
    description TEXT,
    keywords TEXT,
    software TEXT,
    raw_json TEXT DEFAULT '{}',
    FOREIGN KEY (asset_id) REFERENCES assets(id) ON DELETE CASCADE
);
"""

SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS asset_tags (
    asset_id INTEGER NOT NULL,
    tag TEXT NOT NULL,
    PRIMARY KEY (asset_id, tag),
    FOREIGN KEY (asset_id) REFERENCES assets(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS asset_ml_jobs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    asset_id INTEGER NOT NULL,
    job_type TEXT NOT NULL,  -- face_detection, object_recognition
    status TEXT NOT NULL DEFAULT 'pending',  -- pending, processing, completed, failed
    created_at REAL NOT NULL,
    FOREIGN KEY (asset_id) REFERENCES assets(id) ON DELETE CASCADE
);
"""

INDEXES = """
CREATE INDEX IF NOT EXISTS idx_assets_checksum ON assets(checksum);
CREATE INDEX IF NOT EXISTS idx_assets_folder ON assets(folder_id);
CREATE INDEX IF NOT EXISTS idx_folders_parent ON folders(parent_id);
CREATE INDEX IF NOT EXISTS idx_folder_permissions_folder ON folder_permissions(folder_id);

-- At most one active job per (asset, type)
CREATE UNIQUE INDEX IF NOT EXISTS idx_ml_jobs_active
    ON asset_ml_jobs(asset_id, job_type)
    WHERE status IN ('pending', 'processing');
"""

_SAFE_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _is_safe_identifier(value: str) -> bool:
    return bool(value and isinstance(value, str) and _SAFE_IDENT_RE.match(value))


async def table_has_column(db, table_name: str, column_name: str) -> bool:
    if not _is_safe_identifier(table_name) or not _is_safe_identifier(column_name):
        logger.warning("Invalid identifier in table_has_column: %s.%s", table_name, column_name)
        return False
    result = await db.aquery(f"PRAGMA table_info('{table_name}')")
    if not result.ok:
        logger.warning("Unable to inspect %s: %s", table_name, result.error)
        return False
    return column_name in [row["name"] for row in result.data or []]


async def get_schema_version(db) -> int:
    if not await db.ahas_table("metadata"):
        return 0
    res = await db.aquery("SELECT value FROM metadata WHERE key = 'schema_version'")
    if not res.ok or not res.data:
        return 0
    try:
        return int(res.data[0].get("value") or 0)
    except (TypeError, ValueError):
        return 0


async def set_schema_version(db, version: int) -> Result[bool]:
    return await db.aexecute(
        "INSERT OR REPLACE INTO metadata (key, value) VALUES ('schema_version', ?)",
        (str(int(version)),),
    )


def _schema_fingerprint() -> str:
    ddl = f"{SCHEMA_V1}\n{SCHEMA_V2}\n{INDEXES}"
    normalized = "\n".join(line.strip() for line in ddl.splitlines() if line.strip())
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


async def _ensure_schema(db) -> Result[bool]:
    for label, script in (("base tables", SCHEMA_V1), ("tag/job tables", SCHEMA_V2), ("indexes", INDEXES)):
        result = await db.aexecutescript(script)
        if not result.ok:
            logger.error("Failed to ensure %s: %s", label, result.error)
            return result

    version_result = await set_schema_version(db, CURRENT_SCHEMA_VERSION)
    if not version_result.ok:
        logger.error("Failed to set schema version: %s", version_result.error)
        return version_result

    fp_result = await db.aexecute(
        "INSERT OR REPLACE INTO metadata (key, value) VALUES ('schema_ddl_hash', ?)",
        (_schema_fingerprint(),),
    )
    if not fp_result.ok:
        logger.warning("Failed to store schema fingerprint: %s", fp_result.error)

    return Result.Ok(True)


async def migrate_schema(db) -> Result[bool]:
    """
    Bring the catalog schema to the current version.

    Every statement is idempotent, so running this against an up-to-date
    database is a no-op apart from refreshing the version row.
    """
    current_version = await get_schema_version(db)
    if current_version > CURRENT_SCHEMA_VERSION:
        return Result.Err(
            "DB_ERROR",
            f"Database schema version {current_version} is newer than supported {CURRENT_SCHEMA_VERSION}",
        )

    repair_result = await _ensure_schema(db)
    if not repair_result.ok:
        return repair_result

    if current_version == CURRENT_SCHEMA_VERSION:
        logger.debug("Schema already up to date (%s)", current_version)
    else:
        log_success(logger, f"Schema migrated from version {current_version} to {CURRENT_SCHEMA_VERSION}")
    return Result.Ok(True)
