"""
Lazy materialization of the folder tree implied by asset paths.
"""
from __future__ import annotations

import posixpath
from typing import Optional

from ...path_utils import normalize_folder_path, parent_folder_path
from ...shared import get_logger
from .catalog_store import CatalogStore
from .models import Folder

logger = get_logger(__name__)


class FolderHierarchy:
    """
    `ensure(path)` returns the folder row for a directory path, creating missing
    ancestors first. Resolved folders are cached for the lifetime of the instance,
    which the synchronizer scopes to one scan.
    """

    def __init__(self, catalog: CatalogStore) -> None:
        self.catalog = catalog
        self._resolved: dict[str, Folder] = {}
        self.created: list[Folder] = []

    async def ensure(self, path: str) -> Optional[Folder]:
        normalized = normalize_folder_path(path)
        if not normalized:
            return None
        cached = self._resolved.get(normalized)
        if cached is not None:
            return cached

        existing = await self.catalog.get_folder_by_path(normalized)
        if existing is not None:
            self._resolved[normalized] = existing
            return existing

        parent: Optional[Folder] = None
        parent_path = parent_folder_path(normalized)
        if parent_path:
            parent = await self.ensure(parent_path)

        name = posixpath.basename(normalized) or normalized
        folder = await self.catalog.insert_folder(normalized, name, parent.id if parent else None)
        self._resolved[normalized] = folder
        self.created.append(folder)
        logger.debug("Created folder %s (parent=%s)", normalized, parent.path if parent else None)
        return folder
