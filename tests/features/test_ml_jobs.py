import pytest

from phub_backend.features.index.models import Asset, Exif, MlJobType
from phub_backend.features.ml.service import MlJobService
from phub_backend.shared import MediaType


def _asset(media_type=MediaType.IMAGE) -> Asset:
    return Asset(
        id=None, path="/assets/a.jpg", filename="a.jpg", extension=".jpg", media_type=media_type,
        checksum="h", size=1, created_date=0.0, modified_date=0.0, scanned_at=0.0,
    )


def test_should_trigger_threshold():
    service = MlJobService(db=None, min_pixels=500_000)
    assert service.should_trigger(_asset(), Exif(width=1000, height=600)) is True
    assert service.should_trigger(_asset(), Exif(width=500, height=1000)) is False
    assert service.should_trigger(_asset(), None) is False
    assert service.should_trigger(_asset(MediaType.VIDEO), Exif(width=4000, height=3000)) is False


@pytest.mark.asyncio
async def test_enqueue_is_idempotent_while_active(services):
    asset = await services["catalog"].insert_asset(_asset())
    ml = services["ml_jobs"]

    first = await ml.enqueue(asset.id, MlJobType.FACE_DETECTION)
    second = await ml.enqueue(asset.id, MlJobType.FACE_DETECTION)
    other = await ml.enqueue(asset.id, MlJobType.OBJECT_RECOGNITION)

    assert first.ok and first.data is True
    assert second.ok and second.data is False
    assert other.ok and other.data is True
    pending = await ml.pending_jobs()
    assert sorted(row["job_type"] for row in pending.data) == ["face_detection", "object_recognition"]


@pytest.mark.asyncio
async def test_enqueue_again_after_completion(services):
    asset = await services["catalog"].insert_asset(_asset())
    ml = services["ml_jobs"]
    assert (await ml.enqueue(asset.id, MlJobType.FACE_DETECTION)).data is True
    await services["db"].aexecute("UPDATE asset_ml_jobs SET status = 'completed'")
    assert (await ml.enqueue(asset.id, MlJobType.FACE_DETECTION)).data is True


@pytest.mark.asyncio
async def test_enqueue_unknown_asset_fails(services):
    res = await services["ml_jobs"].enqueue(9999, MlJobType.FACE_DETECTION)
    assert res.ok is False
    assert res.code == "ML_ENQUEUE_FAILED"
