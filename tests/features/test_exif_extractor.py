from datetime import datetime

import pytest
from PIL import ExifTags, Image

from phub_backend.features.metadata.exif import PillowExifExtractor, read_exif
from phub_backend.shared import MediaType


def _write_jpeg_with_exif(path):
    exif = Image.Exif()
    exif[ExifTags.Base.Make] = "Canon"
    exif[ExifTags.Base.Model] = "EOS R5"
    exif[ExifTags.Base.Orientation] = 1
    exif[ExifTags.Base.DateTime] = "2023:06:01 12:30:00"
    exif[ExifTags.Base.ImageDescription] = "HDR sunset"
    exif[ExifTags.Base.Software] = "PhotoHub"
    Image.new("RGB", (120, 80), color=(10, 20, 30)).save(path, exif=exif)


def test_read_exif_fields(tmp_path):
    target = tmp_path / "a.jpg"
    _write_jpeg_with_exif(target)

    exif = read_exif(target)

    assert (exif.width, exif.height) == (120, 80)
    assert exif.pixel_count == 9600
    assert exif.camera_make == "Canon"
    assert exif.camera_model == "EOS R5"
    assert exif.orientation == 1
    assert exif.description == "HDR sunset"
    assert exif.software == "PhotoHub"
    assert exif.date_taken == datetime(2023, 6, 1, 12, 30, 0).timestamp()
    assert exif.raw.get("Make") == "Canon"


def test_read_exif_without_tags_still_has_dimensions(tmp_path, make_image):
    target = make_image(tmp_path / "plain.png", size=(30, 20))
    exif = read_exif(target)
    assert (exif.width, exif.height) == (30, 20)
    assert exif.camera_make is None
    assert exif.latitude is None


@pytest.mark.asyncio
async def test_extractor_skips_videos_and_reports_failures(tmp_path):
    extractor = PillowExifExtractor()
    video = await extractor.extract(tmp_path / "clip.mp4", MediaType.VIDEO)
    assert video.ok and video.data is None

    broken = tmp_path / "broken.jpg"
    broken.write_bytes(b"garbage")
    res = await extractor.extract(broken, MediaType.IMAGE)
    assert res.ok is False
    assert res.code == "METADATA_FAILED"
