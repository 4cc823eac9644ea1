"""
EXIF extraction backed by Pillow.

Videos yield no EXIF; images always yield at least their pixel dimensions.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from PIL import ExifTags, Image, UnidentifiedImageError

from ...shared import ErrorCode, MediaType, Result, get_logger
from ..index.models import Exif

logger = get_logger(__name__)

_EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"

# XPKeywords is stored as UTF-16LE bytes by Windows tools.
_XP_KEYWORDS_TAG = 0x9C9E


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, (tuple, list)):
        value = value[0] if value else None
    number = _to_float(value)
    return int(number) if number is not None else None


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    text = str(value).replace("\x00", "").strip()
    return text or None


def _parse_datetime(value: Any) -> Optional[float]:
    text = _to_text(value)
    if not text:
        return None
    try:
        return datetime.strptime(text[:19], _EXIF_DATETIME_FORMAT).timestamp()
    except ValueError:
        return None


def _dms_to_degrees(dms: Any, ref: Any) -> Optional[float]:
    try:
        degrees, minutes, seconds = (float(part) for part in dms)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    value = degrees + minutes / 60.0 + seconds / 3600.0
    if _to_text(ref) in ("S", "W"):
        value = -value
    return round(value, 7)


def _decode_xp(value: Any) -> Optional[str]:
    if isinstance(value, (bytes, bytearray)):
        return _to_text(bytes(value).decode("utf-16-le", errors="ignore"))
    if isinstance(value, (tuple, list)):
        return _decode_xp(bytes(value))
    return _to_text(value)


def _shutter_speed(value: Any) -> Optional[str]:
    seconds = _to_float(value)
    if not seconds or seconds <= 0:
        return None
    if seconds >= 1:
        return f"{seconds:g}"
    return f"1/{round(1 / seconds)}"


def _raw_fields(base: dict[int, Any], exif_ifd: dict[int, Any]) -> dict[str, Any]:
    raw: dict[str, Any] = {}
    for source in (base, exif_ifd):
        for tag_id, value in source.items():
            if isinstance(value, (bytes, bytearray)) and len(value) > 256:
                continue
            raw[ExifTags.TAGS.get(tag_id, str(tag_id))] = value if not isinstance(value, bytes) else _to_text(value)
    return raw


def read_exif(path: Path) -> Exif:
    """Blocking read; raises OSError / UnidentifiedImageError for unreadable files."""
    with Image.open(path) as img:
        width, height = int(img.width), int(img.height)
        exif = img.getexif()
        base = dict(exif)
        exif_ifd = dict(exif.get_ifd(ExifTags.IFD.Exif))
        gps_ifd = dict(exif.get_ifd(ExifTags.IFD.GPSInfo))

    Base = ExifTags.Base
    GPS = ExifTags.GPS
    latitude = _dms_to_degrees(gps_ifd.get(GPS.GPSLatitude), gps_ifd.get(GPS.GPSLatitudeRef))
    longitude = _dms_to_degrees(gps_ifd.get(GPS.GPSLongitude), gps_ifd.get(GPS.GPSLongitudeRef))
    altitude = _to_float(gps_ifd.get(GPS.GPSAltitude))
    if altitude is not None and _to_int(gps_ifd.get(GPS.GPSAltitudeRef)) == 1:
        altitude = -altitude

    return Exif(
        width=width,
        height=height,
        date_taken=_parse_datetime(exif_ifd.get(Base.DateTimeOriginal) or base.get(Base.DateTime)),
        camera_make=_to_text(base.get(Base.Make)),
        camera_model=_to_text(base.get(Base.Model)),
        lens_model=_to_text(exif_ifd.get(Base.LensModel)),
        orientation=_to_int(base.get(Base.Orientation)),
        iso=_to_int(exif_ifd.get(Base.ISOSpeedRatings)),
        aperture=_to_float(exif_ifd.get(Base.FNumber)),
        shutter_speed=_shutter_speed(exif_ifd.get(Base.ExposureTime)),
        focal_length=_to_float(exif_ifd.get(Base.FocalLength)),
        latitude=latitude,
        longitude=longitude,
        altitude=altitude,
        description=_to_text(base.get(Base.ImageDescription)),
        keywords=_decode_xp(base.get(_XP_KEYWORDS_TAG)),
        software=_to_text(base.get(Base.Software)),
        raw=_raw_fields(base, exif_ifd),
    )


class PillowExifExtractor:
    async def extract(self, file_path: Path, media_type: MediaType) -> Result[Optional[Exif]]:
        if MediaType(media_type) != MediaType.IMAGE:
            return Result.Ok(None, skipped="unsupported media type")
        try:
            exif = await asyncio.to_thread(read_exif, Path(file_path))
        except (OSError, UnidentifiedImageError, ValueError, SyntaxError) as exc:
            logger.debug("EXIF read failed for %s: %s", file_path, exc)
            return Result.Err(ErrorCode.METADATA_FAILED, f"Failed to read EXIF: {exc}")
        return Result.Ok(exif)
