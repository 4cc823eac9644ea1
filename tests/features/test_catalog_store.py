import pytest

from phub_backend.features.index.catalog_store import CatalogError
from phub_backend.features.index.models import Asset, Exif
from phub_backend.shared import MediaType


def _asset(path="/assets/a.jpg") -> Asset:
    return Asset(
        id=None, path=path, filename=path.rsplit("/", 1)[-1], extension=".jpg", media_type=MediaType.IMAGE,
        checksum="abc", size=5, created_date=1.0, modified_date=2.0, scanned_at=3.0,
    )


@pytest.mark.asyncio
async def test_insert_update_and_load(services):
    catalog = services["catalog"]
    asset = await catalog.insert_asset(_asset())
    assert asset.id is not None

    asset.path = "/assets/b.jpg"
    asset.checksum = "def"
    await catalog.update_asset(asset)

    loaded = await catalog.get_asset(asset.id)
    assert loaded == asset
    assert await catalog.get_asset_by_path("/assets/a.jpg") is None
    assert await catalog.count_assets() == 1


@pytest.mark.asyncio
async def test_duplicate_path_raises_catalog_error(services):
    catalog = services["catalog"]
    await catalog.insert_asset(_asset())
    with pytest.raises(CatalogError) as excinfo:
        await catalog.insert_asset(_asset())
    assert excinfo.value.code == "DB_ERROR"


@pytest.mark.asyncio
async def test_update_requires_id(services):
    with pytest.raises(CatalogError):
        await services["catalog"].update_asset(_asset())


@pytest.mark.asyncio
async def test_exif_and_tags_round_trip(services):
    catalog = services["catalog"]
    asset = await catalog.insert_asset(_asset())
    exif = Exif(width=10, height=20, camera_make="Canon", latitude=48.85, raw={"Make": "Canon"})

    await catalog.save_exif(asset.id, exif)
    await catalog.save_tags(asset.id, ["hdr", "burst", "hdr"])

    assert await catalog.load_exif(asset.id) == exif
    assert await catalog.load_tags(asset.id) == ["burst", "hdr"]


@pytest.mark.asyncio
async def test_delete_assets_reports_count(services):
    catalog = services["catalog"]
    a = await catalog.insert_asset(_asset("/assets/a.jpg"))
    b = await catalog.insert_asset(_asset("/assets/b.jpg"))
    assert await catalog.delete_assets([a.id, b.id, 999]) == 2
    assert await catalog.delete_assets([]) == 0
