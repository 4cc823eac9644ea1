from pathlib import Path

import pytest

from phub_backend.features.index.catalog_store import CatalogError
from phub_backend.features.index.enricher import AssetEnricher
from phub_backend.features.index.models import Asset, Exif, IndexStatistics, Thumbnail, ThumbnailSize
from phub_backend.shared import MediaType, Result


def _asset(path="/assets/a.jpg", media_type=MediaType.IMAGE) -> Asset:
    return Asset(
        id=None, path=path, filename=path.rsplit("/", 1)[-1], extension=".jpg", media_type=media_type,
        checksum=path, size=1, created_date=0.0, modified_date=0.0, scanned_at=0.0,
    )


class _Extractor:
    def __init__(self, exif=None, exc=None):
        self.exif = exif
        self.exc = exc

    async def extract(self, file_path, media_type):
        if self.exc is not None:
            raise self.exc
        return Result.Ok(self.exif)


class _Tags:
    def __init__(self, tags):
        self.tags = tags
        self.calls = 0

    async def detect(self, asset, file_path, exif):
        self.calls += 1
        return Result.Ok(list(self.tags))


class _Thumbs:
    def __init__(self, fail=False, missing=None):
        self.fail = fail
        self.missing = list(missing or [])
        self.generated: list[list[ThumbnailSize]] = []
        self.removed: list[int] = []

    def supports(self, media_type):
        return media_type == MediaType.IMAGE

    def missing_sizes(self, asset_id):
        return list(self.missing)

    async def generate(self, asset_id, file_path, media_type, sizes=None):
        if self.fail:
            return Result.Err("THUMBNAIL_FAILED", "corrupt image")
        wanted = list(sizes) if sizes is not None else list(ThumbnailSize)
        self.generated.append(wanted)
        return Result.Ok([Thumbnail(asset_id, s, f"/t/{asset_id}/{s.value}.jpg", 10, 10) for s in wanted])

    def remove_for_asset(self, asset_id):
        self.removed.append(asset_id)
        return True


class _Ml:
    def __init__(self, trigger=True):
        self.trigger = trigger
        self.jobs = []

    def should_trigger(self, asset, exif):
        return self.trigger and exif is not None

    async def enqueue(self, asset_id, job_type):
        self.jobs.append((asset_id, job_type))
        return Result.Ok(True)


@pytest.mark.asyncio
async def test_derive_for_new_runs_every_collaborator(services):
    catalog = services["catalog"]
    asset = await catalog.insert_asset(_asset())
    thumbs, ml, tags = _Thumbs(), _Ml(), _Tags(["hdr"])
    enricher = AssetEnricher(
        catalog, extractor=_Extractor(Exif(width=4000, height=3000)), tag_detector=tags, thumbnails=thumbs, ml_jobs=ml
    )
    stats = IndexStatistics()

    await enricher.derive_for_new(asset, Path("/x/a.jpg"), stats)

    assert stats.exif_extracted == 1
    assert stats.media_tags_detected == 1
    assert stats.thumbnails_generated == 3
    assert stats.ml_jobs_queued == 2
    assert stats.errors == 0
    assert (await catalog.load_exif(asset.id)).width == 4000
    assert await catalog.load_tags(asset.id) == ["hdr"]
    assert len(await catalog.load_thumbnails(asset.id)) == 3


@pytest.mark.asyncio
async def test_collaborator_failures_are_isolated(services):
    catalog = services["catalog"]
    asset = await catalog.insert_asset(_asset())
    tags = _Tags(["hdr"])
    enricher = AssetEnricher(
        catalog, extractor=_Extractor(exc=ValueError("bad exif")), tag_detector=tags, thumbnails=_Thumbs(fail=True), ml_jobs=_Ml()
    )
    stats = IndexStatistics()

    await enricher.derive_for_new(asset, Path("/x/a.jpg"), stats)

    assert stats.errors == 2
    assert stats.exif_extracted == 0
    assert tags.calls == 0
    assert stats.ml_jobs_queued == 0
    assert await catalog.get_asset(asset.id) is not None
    assert await catalog.load_thumbnails(asset.id) == []


@pytest.mark.asyncio
async def test_catalog_errors_propagate(services, monkeypatch):
    catalog = services["catalog"]
    asset = await catalog.insert_asset(_asset())

    async def _broken_save(*_args, **_kwargs):
        raise CatalogError("disk full")

    monkeypatch.setattr(catalog, "save_exif", _broken_save)
    enricher = AssetEnricher(catalog, extractor=_Extractor(Exif(width=1, height=1)))
    with pytest.raises(CatalogError):
        await enricher.derive_for_new(asset, Path("/x/a.jpg"), IndexStatistics())


@pytest.mark.asyncio
async def test_videos_get_no_thumbnails(services):
    catalog = services["catalog"]
    asset = await catalog.insert_asset(_asset("/assets/clip.mp4", media_type=MediaType.VIDEO))
    thumbs = _Thumbs(missing=list(ThumbnailSize))
    enricher = AssetEnricher(catalog, extractor=_Extractor(None), thumbnails=thumbs)
    stats = IndexStatistics()

    await enricher.derive_for_new(asset, Path("/x/clip.mp4"), stats)
    await enricher.reconcile_thumbnails(asset, Path("/x/clip.mp4"), stats)

    assert thumbs.generated == []
    assert stats.errors == 0


@pytest.mark.asyncio
async def test_reconcile_regenerates_only_missing_sizes(services):
    catalog = services["catalog"]
    asset = await catalog.insert_asset(_asset())
    thumbs = _Thumbs(missing=[ThumbnailSize.MEDIUM])
    enricher = AssetEnricher(catalog, thumbnails=thumbs)
    stats = IndexStatistics()

    count = await enricher.reconcile_thumbnails(asset, Path("/x/a.jpg"), stats)

    assert count == 1
    assert thumbs.generated == [[ThumbnailSize.MEDIUM]]
    assert stats.thumbnails_regenerated == 1
    assert stats.thumbnails_generated == 0


def test_discard_thumbnails_counts_removed():
    thumbs = _Thumbs()
    enricher = AssetEnricher(catalog=None, thumbnails=thumbs)
    assert enricher.discard_thumbnails([3, 4]) == 2
    assert thumbs.removed == [3, 4]
