"""
Heuristic media tags derived from EXIF and sibling files.
"""
from __future__ import annotations

import asyncio
import re
from enum import Enum
from pathlib import Path
from typing import Final

from ...shared import Result, get_logger
from ..index.models import Asset, Exif

logger = get_logger(__name__)


class MediaTag(str, Enum):
    PANORAMA = "panorama"
    SCREENSHOT = "screenshot"
    LIVE_PHOTO = "live_photo"
    BURST = "burst"
    HDR = "hdr"


SCREENSHOT_RESOLUTIONS: Final[frozenset[tuple[int, int]]] = frozenset(
    {
        (1920, 1080), (2560, 1440), (3840, 2160),  # 16:9
        (1080, 1920), (1440, 2560), (2160, 3840),  # 9:16
        (2048, 1536), (1024, 768),  # 4:3
    }
)

PANORAMA_WIDE_RATIO: Final[float] = 2.5
PANORAMA_TALL_RATIO: Final[float] = 0.4
HDR_KEYWORDS: Final[tuple[str, ...]] = ("hdr", "high dynamic range")

# Burst frames carry an index after the camera sequence number: IMG_1234_001.
_BURST_RE = re.compile(r"^(.+_\d+)_\d{3,}$")


def is_panorama(exif: Exif) -> bool:
    if not exif.width or not exif.height:
        return False
    ratio = float(exif.width) / float(exif.height)
    return ratio > PANORAMA_WIDE_RATIO or ratio < PANORAMA_TALL_RATIO


def is_screenshot(exif: Exif) -> bool:
    if not exif.width or not exif.height:
        return False
    return (int(exif.width), int(exif.height)) in SCREENSHOT_RESOLUTIONS


def is_live_photo(file_path: Path) -> bool:
    """iOS live photos ship a `.mov` with the same stem next to the still."""
    stem = file_path.stem
    for suffix in (".mov", ".MOV"):
        if file_path.with_name(f"{stem}{suffix}").exists():
            return True
    return False


def is_burst(file_path: Path) -> bool:
    return bool(_BURST_RE.match(file_path.stem))


def is_hdr(exif: Exif) -> bool:
    text = f"{exif.keywords or ''} {exif.description or ''}".lower()
    return any(keyword in text for keyword in HDR_KEYWORDS)


def detect_tags(file_path: Path, exif: Exif) -> list[str]:
    tags: list[MediaTag] = []
    if is_panorama(exif):
        tags.append(MediaTag.PANORAMA)
    if is_screenshot(exif):
        tags.append(MediaTag.SCREENSHOT)
    if is_live_photo(file_path):
        tags.append(MediaTag.LIVE_PHOTO)
    if is_burst(file_path):
        tags.append(MediaTag.BURST)
    if is_hdr(exif):
        tags.append(MediaTag.HDR)
    return [tag.value for tag in tags]


class MediaRecognitionService:
    async def detect(self, asset: Asset, file_path: Path, exif: Exif) -> Result[list[str]]:
        try:
            tags = await asyncio.to_thread(detect_tags, Path(file_path), exif)
        except OSError as exc:
            return Result.Err("METADATA_FAILED", f"Tag detection failed: {exc}")
        if tags:
            logger.debug("Detected tags %s for %s", tags, asset.path)
        return Result.Ok(tags)
