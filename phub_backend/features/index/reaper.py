"""
Orphan reclamation: catalog entries with no counterpart in the current scan.

Assets are reaped before folders; folder retention depends on which folders
still hold assets.
"""
from __future__ import annotations

from typing import Iterable

from ...path_utils import folder_depth, normalize_folder_path
from ...shared import get_logger
from .catalog_store import CatalogStore

logger = get_logger(__name__)


def is_under(path: str, scope: str) -> bool:
    """True when `path` is `scope` itself or below it. An empty scope covers everything."""
    scope = normalize_folder_path(scope)
    if not scope:
        return True
    path = normalize_folder_path(path)
    return path == scope or path.startswith(scope + "/")


class OrphanReaper:
    def __init__(self, catalog: CatalogStore) -> None:
        self.catalog = catalog

    async def reap_assets(self, discovered_paths: Iterable[str], scope: str = "") -> list[int]:
        """Delete every asset under `scope` whose path was not discovered; returns the deleted ids."""
        discovered = set(discovered_paths)
        orphans = [
            asset
            for asset in await self.catalog.load_assets()
            if asset.path not in discovered and is_under(asset.path, scope)
        ]
        if not orphans:
            return []
        ids = [int(a.id) for a in orphans]
        await self.catalog.delete_assets(ids)
        for asset in orphans:
            logger.debug("Removed orphaned asset %s", asset.path)
        return ids

    async def reap_folders(self, visited_paths: Iterable[str], scope: str = "") -> list[int]:
        """
        Delete folders under `scope` that hold no assets, carry no grants, were not
        visited by this scan, and are not an ancestor of a kept folder.
        """
        folders = await self.catalog.load_folders()
        if not folders:
            return []
        by_id = {f.id: f for f in folders}
        visited = {normalize_folder_path(p) for p in visited_paths}

        kept: set[int] = set()
        kept |= await self.catalog.folder_ids_with_assets()
        kept |= await self.catalog.folder_ids_with_grants()
        kept |= {f.id for f in folders if f.path in visited or not is_under(f.path, scope)}

        # Ancestors of anything kept stay too.
        for folder_id in list(kept):
            parent_id = by_id[folder_id].parent_id if folder_id in by_id else None
            while parent_id is not None and parent_id not in kept:
                kept.add(parent_id)
                parent = by_id.get(parent_id)
                parent_id = parent.parent_id if parent else None

        doomed = sorted(
            (f for f in folders if f.id not in kept),
            key=lambda f: (-folder_depth(f.path), f.path),
        )
        if not doomed:
            return []
        await self.catalog.delete_folders([f.id for f in doomed])
        for folder in doomed:
            logger.debug("Removed orphaned folder %s", folder.path)
        return [f.id for f in doomed]
