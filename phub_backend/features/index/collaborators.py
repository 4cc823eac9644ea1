"""
Contracts of the services the synchronizer delegates derived data to.

Each call returns a `Result`; an error result (or an exception) affects only
the asset it was made for.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Protocol

from ...shared import MediaType, Result
from .models import Asset, Exif, MlJobType, Thumbnail, ThumbnailSize


class MetadataExtractor(Protocol):
    async def extract(self, file_path: Path, media_type: MediaType) -> Result[Optional[Exif]]:
        ...


class TagDetector(Protocol):
    async def detect(self, asset: Asset, file_path: Path, exif: Exif) -> Result[list[str]]:
        ...


class ThumbnailGenerator(Protocol):
    def supports(self, media_type: MediaType) -> bool:
        ...

    def missing_sizes(self, asset_id: int) -> list[ThumbnailSize]:
        ...

    async def generate(
        self,
        asset_id: int,
        file_path: Path,
        media_type: MediaType,
        sizes: Optional[Iterable[ThumbnailSize]] = None,
    ) -> Result[list[Thumbnail]]:
        ...

    def remove_for_asset(self, asset_id: int) -> bool:
        ...


class MlJobEnqueuer(Protocol):
    def should_trigger(self, asset: Asset, exif: Optional[Exif]) -> bool:
        ...

    async def enqueue(self, asset_id: int, job_type: MlJobType) -> Result[bool]:
        ...
