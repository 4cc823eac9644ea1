"""
CatalogStore: explicit repository over the catalog tables.

Every method runs on whatever connection the caller's context is bound to, so
inside `db.atransaction()` reads observe the transaction's own writes. Failed
statements raise `CatalogError`, which rolls the surrounding transaction back.
"""
from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, Iterable, Optional

from ...adapters.db.sqlite import Sqlite
from ...shared import ErrorCode, MediaType, Result, get_logger, now
from .models import Asset, Exif, Folder, Thumbnail, ThumbnailSize

logger = get_logger(__name__)

_ASSET_COLUMNS = (
    "id, path, filename, extension, media_type, checksum, size, "
    "created_date, modified_date, scanned_at, folder_id, owner_id"
)

_EXIF_FIELDS = (
    "width", "height", "date_taken", "camera_make", "camera_model", "lens_model", "orientation",
    "iso", "aperture", "shutter_speed", "focal_length", "latitude", "longitude", "altitude",
    "description", "keywords", "software",
)


class CatalogError(RuntimeError):
    """A catalog statement failed; carries the adapter's error code."""

    def __init__(self, message: str, code: str = ErrorCode.DB_ERROR.value) -> None:
        super().__init__(message)
        self.code = code


def _check(result: Result[Any], action: str) -> Any:
    if not result.ok:
        raise CatalogError(f"{action} failed: {result.error}", result.code)
    return result.data


class CatalogStore:
    def __init__(self, db: Sqlite) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    async def load_assets(self) -> list[Asset]:
        rows = _check(await self.db.aquery(f"SELECT {_ASSET_COLUMNS} FROM assets ORDER BY id"), "Load assets")
        return [Asset.from_row(row) for row in rows or []]

    async def get_asset(self, asset_id: int) -> Optional[Asset]:
        rows = _check(
            await self.db.aquery(f"SELECT {_ASSET_COLUMNS} FROM assets WHERE id = ?", (int(asset_id),)),
            "Load asset",
        )
        return Asset.from_row(rows[0]) if rows else None

    async def get_asset_by_path(self, path: str) -> Optional[Asset]:
        rows = _check(
            await self.db.aquery(f"SELECT {_ASSET_COLUMNS} FROM assets WHERE path = ?", (path,)),
            "Load asset by path",
        )
        return Asset.from_row(rows[0]) if rows else None

    async def count_assets(self) -> int:
        rows = _check(await self.db.aquery("SELECT COUNT(*) AS n FROM assets"), "Count assets")
        return int(rows[0]["n"]) if rows else 0

    async def insert_asset(self, asset: Asset) -> Asset:
        """Insert a new row and return the asset with its assigned id."""
        new_id = _check(
            await self.db.aexecute(
                """
                INSERT INTO assets
                (path, filename, extension, media_type, checksum, size,
                 created_date, modified_date, scanned_at, folder_id, owner_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    asset.path,
                    asset.filename,
                    asset.extension,
                    MediaType(asset.media_type).value,
                    asset.checksum,
                    int(asset.size),
                    float(asset.created_date),
                    float(asset.modified_date),
                    float(asset.scanned_at),
                    asset.folder_id,
                    asset.owner_id,
                ),
            ),
            f"Insert asset {asset.path}",
        )
        if not new_id:
            raise CatalogError(f"Insert asset {asset.path} returned no id")
        asset.id = int(new_id)
        return asset

    async def update_asset(self, asset: Asset) -> None:
        if asset.id is None:
            raise CatalogError(f"Cannot update unsaved asset {asset.path}", ErrorCode.INVALID_INPUT.value)
        _check(
            await self.db.aexecute(
                """
                UPDATE assets
                SET path = ?, filename = ?, extension = ?, checksum = ?, size = ?,
                    created_date = ?, modified_date = ?, scanned_at = ?, folder_id = ?
                WHERE id = ?
                """,
                (
                    asset.path,
                    asset.filename,
                    asset.extension,
                    asset.checksum,
                    int(asset.size),
                    float(asset.created_date),
                    float(asset.modified_date),
                    float(asset.scanned_at),
                    asset.folder_id,
                    int(asset.id),
                ),
            ),
            f"Update asset {asset.id}",
        )

    async def delete_assets(self, asset_ids: Iterable[int]) -> int:
        """Delete assets; thumbnails, exif, tags and ML jobs cascade."""
        ids = sorted({int(i) for i in asset_ids})
        if not ids:
            return 0
        return int(_check(await self.db.aexecute_in("DELETE FROM assets WHERE {IN_CLAUSE}", "id", ids), "Delete assets") or 0)

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    async def get_folder_by_path(self, path: str) -> Optional[Folder]:
        rows = _check(
            await self.db.aquery("SELECT id, path, name, parent_id FROM folders WHERE path = ?", (path,)),
            "Load folder",
        )
        return Folder.from_row(rows[0]) if rows else None

    async def insert_folder(self, path: str, name: str, parent_id: Optional[int]) -> Folder:
        new_id = _check(
            await self.db.aexecute(
                "INSERT INTO folders (path, name, parent_id, created_at) VALUES (?, ?, ?, ?)",
                (path, name, parent_id, now()),
            ),
            f"Insert folder {path}",
        )
        return Folder(id=int(new_id), path=path, name=name, parent_id=parent_id)

    async def load_folders(self) -> list[Folder]:
        rows = _check(await self.db.aquery("SELECT id, path, name, parent_id FROM folders ORDER BY id"), "Load folders")
        return [Folder.from_row(row) for row in rows or []]

    async def folder_ids_with_assets(self) -> set[int]:
        rows = _check(
            await self.db.aquery("SELECT DISTINCT folder_id FROM assets WHERE folder_id IS NOT NULL"),
            "Load asset folders",
        )
        return {int(row["folder_id"]) for row in rows or []}

    async def folder_ids_with_grants(self) -> set[int]:
        rows = _check(await self.db.aquery("SELECT DISTINCT folder_id FROM folder_permissions"), "Load folder grants")
        return {int(row["folder_id"]) for row in rows or []}

    async def add_folder_grant(self, folder_id: int, principal: str, access: str = "read") -> None:
        _check(
            await self.db.aexecute(
                "INSERT INTO folder_permissions (folder_id, principal, access) VALUES (?, ?, ?)",
                (int(folder_id), principal, access),
            ),
            "Insert folder grant",
        )

    async def delete_folders(self, folder_ids: Iterable[int]) -> int:
        """Delete folders one at a time, in the order given (callers pass deepest first)."""
        deleted = 0
        for folder_id in folder_ids:
            res = await self.db.aexecute("DELETE FROM folders WHERE id = ?", (int(folder_id),))
            _check(res, "Delete folder")
            deleted += int(res.meta.get("rowcount") or 0)
        return deleted

    # ------------------------------------------------------------------
    # Derived data
    # ------------------------------------------------------------------

    async def load_thumbnails(self, asset_id: int) -> list[Thumbnail]:
        rows = _check(
            await self.db.aquery(
                "SELECT asset_id, size, file_path, width, height, byte_size, format "
                "FROM asset_thumbnails WHERE asset_id = ? ORDER BY size",
                (int(asset_id),),
            ),
            "Load thumbnails",
        )
        return [
            Thumbnail(
                asset_id=int(row["asset_id"]),
                size=ThumbnailSize(row["size"]),
                file_path=str(row["file_path"]),
                width=int(row["width"] or 0),
                height=int(row["height"] or 0),
                byte_size=int(row["byte_size"] or 0),
                format=str(row["format"] or "jpeg"),
            )
            for row in rows or []
        ]

    async def replace_thumbnails(self, asset_id: int, thumbnails: Iterable[Thumbnail]) -> int:
        """Upsert one row per (asset, size); sizes not given are left alone."""
        params = [
            (int(asset_id), t.size.value, t.file_path, int(t.width), int(t.height), int(t.byte_size), t.format)
            for t in thumbnails
        ]
        return int(
            _check(
                await self.db.aexecutemany(
                    "INSERT OR REPLACE INTO asset_thumbnails "
                    "(asset_id, size, file_path, width, height, byte_size, format) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    params,
                ),
                "Save thumbnails",
            )
            or 0
        )

    async def save_exif(self, asset_id: int, exif: Exif) -> None:
        values = asdict(exif)
        raw_json = json.dumps(values.pop("raw", {}) or {}, ensure_ascii=False, default=str)
        columns = ", ".join(("asset_id",) + _EXIF_FIELDS + ("raw_json",))
        placeholders = ", ".join(["?"] * (len(_EXIF_FIELDS) + 2))
        _check(
            await self.db.aexecute(
                f"INSERT OR REPLACE INTO asset_exif ({columns}) VALUES ({placeholders})",
                (int(asset_id),) + tuple(values.get(name) for name in _EXIF_FIELDS) + (raw_json,),
            ),
            "Save exif",
        )

    async def load_exif(self, asset_id: int) -> Optional[Exif]:
        rows = _check(
            await self.db.aquery(
                f"SELECT {', '.join(_EXIF_FIELDS)}, raw_json FROM asset_exif WHERE asset_id = ?",
                (int(asset_id),),
            ),
            "Load exif",
        )
        if not rows:
            return None
        row = rows[0]
        try:
            raw = json.loads(row.get("raw_json") or "{}")
        except (TypeError, ValueError):
            raw = {}
        return Exif(**{name: row.get(name) for name in _EXIF_FIELDS}, raw=raw if isinstance(raw, dict) else {})

    async def save_tags(self, asset_id: int, tags: Iterable[str]) -> int:
        params = [(int(asset_id), str(tag)) for tag in sorted({str(t) for t in tags if t})]
        return int(
            _check(
                await self.db.aexecutemany("INSERT OR IGNORE INTO asset_tags (asset_id, tag) VALUES (?, ?)", params),
                "Save tags",
            )
            or 0
        )

    async def load_tags(self, asset_id: int) -> list[str]:
        rows = _check(
            await self.db.aquery("SELECT tag FROM asset_tags WHERE asset_id = ? ORDER BY tag", (int(asset_id),)),
            "Load tags",
        )
        return [str(row["tag"]) for row in rows or []]
