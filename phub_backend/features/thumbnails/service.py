"""
Thumbnail rendering with Pillow.

One JPEG per (asset, size) at `{root}/{asset_id}/{size}.jpg`. Writes overwrite
in place, so regenerating a size is always safe.
"""
from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import Iterable, Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from ...config import THUMBNAIL_JPEG_QUALITY, THUMBNAILS_ROOT
from ...shared import ErrorCode, MediaType, Result, get_logger
from ..index.models import Thumbnail, ThumbnailSize

logger = get_logger(__name__)

ALL_SIZES: tuple[ThumbnailSize, ...] = (ThumbnailSize.SMALL, ThumbnailSize.MEDIUM, ThumbnailSize.LARGE)


def render_thumbnails(
    source: Path,
    asset_id: int,
    sizes: Iterable[ThumbnailSize],
    root: Path,
    quality: int,
) -> list[Thumbnail]:
    """Blocking render of the requested sizes; returns one record per written file."""
    out_dir = root / str(int(asset_id))
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[Thumbnail] = []
    with Image.open(source) as img:
        oriented = ImageOps.exif_transpose(img)
        if oriented.mode not in ("RGB", "L"):
            oriented = oriented.convert("RGB")
        for size in sizes:
            thumb = oriented.copy()
            thumb.thumbnail((size.max_edge, size.max_edge), Image.Resampling.LANCZOS)
            target = out_dir / f"{size.value}.jpg"
            thumb.save(target, "JPEG", quality=int(quality), optimize=True)
            written.append(
                Thumbnail(
                    asset_id=int(asset_id),
                    size=size,
                    file_path=str(target),
                    width=int(thumb.width),
                    height=int(thumb.height),
                    byte_size=int(target.stat().st_size),
                    format="jpeg",
                )
            )
    return written


class PillowThumbnailGenerator:
    def __init__(self, root: Optional[Path] = None, quality: int = THUMBNAIL_JPEG_QUALITY) -> None:
        self.root = Path(root) if root is not None else THUMBNAILS_ROOT
        self.quality = int(quality)

    def supports(self, media_type: MediaType) -> bool:
        return MediaType(media_type) == MediaType.IMAGE

    def thumbnail_path(self, asset_id: int, size: ThumbnailSize) -> Path:
        return self.root / str(int(asset_id)) / f"{size.value}.jpg"

    def missing_sizes(self, asset_id: int) -> list[ThumbnailSize]:
        """Sizes whose file is absent on disk, regardless of what the catalog says."""
        return [size for size in ALL_SIZES if not self.thumbnail_path(asset_id, size).is_file()]

    async def generate(
        self,
        asset_id: int,
        file_path: Path,
        media_type: MediaType,
        sizes: Optional[Iterable[ThumbnailSize]] = None,
    ) -> Result[list[Thumbnail]]:
        if not self.supports(media_type):
            return Result.Err(ErrorCode.UNSUPPORTED, f"No thumbnails for {MediaType(media_type).value}")
        wanted = list(sizes) if sizes is not None else list(ALL_SIZES)
        if not wanted:
            return Result.Ok([])
        try:
            written = await asyncio.to_thread(
                render_thumbnails, Path(file_path), int(asset_id), wanted, self.root, self.quality
            )
        except (OSError, UnidentifiedImageError, ValueError, Image.DecompressionBombError) as exc:
            return Result.Err(ErrorCode.THUMBNAIL_FAILED, f"Thumbnail generation failed: {exc}")
        return Result.Ok(written)

    def remove_for_asset(self, asset_id: int) -> bool:
        target = self.root / str(int(asset_id))
        if not target.exists():
            return False
        try:
            shutil.rmtree(target)
        except OSError as exc:
            logger.warning("Failed to remove thumbnails for asset %s: %s", asset_id, exc)
            return False
        return True
