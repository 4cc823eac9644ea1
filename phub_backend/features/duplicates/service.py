"""
Duplicate resolution by content checksum.

Every group of catalog entries sharing a checksum collapses to one canonical
entry. The canonical entry is the most recently scanned entry whose file exists
on disk (lowest id on ties); the others are deleted with their derived data.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Optional

from ...path_utils import VirtualPathResolver
from ...shared import get_logger, log_structured
from ..index.catalog_store import CatalogStore
from ..index.models import Asset

logger = get_logger(__name__)


@dataclass
class DuplicateResolution:
    groups: int = 0
    removed_ids: list[int] = field(default_factory=list)
    relocated_ids: list[int] = field(default_factory=list)


def _recency_key(asset: Asset) -> tuple[float, int]:
    return (-float(asset.scanned_at or 0.0), int(asset.id or 0))


def _latest_key(asset: Asset) -> tuple[float, float, int]:
    return (-float(asset.scanned_at or 0.0), -float(asset.modified_date or 0.0), int(asset.id or 0))


def pick_canonical(group: list[Asset], exists: dict[int, bool]) -> Asset:
    """Most recently scanned member, swapped for the first member with a file when it has none."""
    ordered = sorted(group, key=_recency_key)
    preferred = ordered[0]
    if exists.get(int(preferred.id or 0)):
        return preferred
    for candidate in ordered[1:]:
        if exists.get(int(candidate.id or 0)):
            return candidate
    return preferred


def pick_latest(group: list[Asset], exists: dict[int, bool]) -> Asset:
    """Member whose path the canonical entry adopts: newest scan, then newest mtime."""
    present = [a for a in group if exists.get(int(a.id or 0))] or list(group)
    return sorted(present, key=_latest_key)[0]


class DuplicateResolver:
    def __init__(
        self,
        catalog: CatalogStore,
        resolver: VirtualPathResolver,
        file_exists: Optional[Callable[[str], bool]] = None,
    ) -> None:
        self.catalog = catalog
        self.resolver = resolver
        self._file_exists = file_exists or (lambda virtual_path: self.resolver.resolve(virtual_path).is_file())

    def _existence(self, group: list[Asset]) -> dict[int, bool]:
        return {int(a.id or 0): bool(self._file_exists(a.path)) for a in group}

    async def resolve(self) -> DuplicateResolution:
        """Collapse every duplicate group; raises `CatalogError` on write failure."""
        groups: dict[str, list[Asset]] = defaultdict(list)
        for asset in await self.catalog.load_assets():
            groups[asset.checksum].append(asset)

        outcome = DuplicateResolution()
        for checksum, group in groups.items():
            if len(group) < 2:
                continue
            outcome.groups += 1
            exists = await asyncio.to_thread(self._existence, group)
            canonical = pick_canonical(group, exists)
            latest = pick_latest(group, exists)
            losers = [a for a in group if a.id != canonical.id]

            await self.catalog.delete_assets([int(a.id) for a in losers])
            outcome.removed_ids.extend(int(a.id) for a in losers)

            if latest.id != canonical.id and latest.path != canonical.path:
                canonical.path = latest.path
                canonical.filename = latest.filename
                canonical.extension = latest.extension
                canonical.folder_id = latest.folder_id
                canonical.size = latest.size
                canonical.created_date = latest.created_date
                canonical.modified_date = latest.modified_date
                await self.catalog.update_asset(canonical)
                outcome.relocated_ids.append(int(canonical.id))

            log_structured(
                logger,
                logging.INFO,
                "Resolved duplicate group",
                checksum=checksum[:12],
                kept=canonical.id,
                kept_path=canonical.path,
                removed=[a.id for a in losers],
            )
        return outcome
