from pathlib import Path

import pytest

from phub_backend.features.index.models import Asset, Exif
from phub_backend.features.tags.recognition import (
    MediaRecognitionService,
    detect_tags,
    is_burst,
    is_hdr,
    is_panorama,
    is_screenshot,
)
from phub_backend.shared import MediaType


def test_panorama_ratio_bounds():
    assert is_panorama(Exif(width=6000, height=2000))
    assert is_panorama(Exif(width=1000, height=3000))
    assert not is_panorama(Exif(width=4000, height=3000))
    assert not is_panorama(Exif())


def test_screenshot_resolutions():
    assert is_screenshot(Exif(width=1920, height=1080))
    assert is_screenshot(Exif(width=1080, height=1920))
    assert not is_screenshot(Exif(width=4032, height=3024))


def test_burst_and_hdr():
    assert is_burst(Path("IMG_1234_001.jpg"))
    assert is_burst(Path("DSC_0001_0042.jpg"))
    assert not is_burst(Path("IMG_1234.jpg"))
    assert not is_burst(Path("DSC_0001.jpg"))
    assert not is_burst(Path("holiday_2023.jpg"))
    assert is_hdr(Exif(keywords="HDR;sunset"))
    assert is_hdr(Exif(description="High Dynamic Range shot"))
    assert not is_hdr(Exif(description="plain"))


def test_live_photo_needs_sibling_mov(tmp_path):
    still = tmp_path / "IMG_0001.jpg"
    still.write_bytes(b"x")
    assert "live_photo" not in detect_tags(still, Exif())
    (tmp_path / "IMG_0001.MOV").write_bytes(b"x")
    assert "live_photo" in detect_tags(still, Exif())


@pytest.mark.asyncio
async def test_service_returns_tag_values(tmp_path):
    asset = Asset(
        id=1, path="/assets/p.jpg", filename="p.jpg", extension=".jpg", media_type=MediaType.IMAGE,
        checksum="h", size=1, created_date=0.0, modified_date=0.0, scanned_at=0.0,
    )
    res = await MediaRecognitionService().detect(asset, tmp_path / "p_0007_123.jpg", Exif(width=1920, height=1080))
    assert res.ok
    assert res.data == ["screenshot", "burst"]
