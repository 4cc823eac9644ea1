from pathlib import Path

import pytest

from phub_backend.features.index.change_detector import ChangeDetector
from phub_backend.features.index.models import Asset, ChangeKind, DiscoveredFile
from phub_backend.path_utils import VirtualPathResolver
from phub_backend.shared import MediaType

LIB = Path("/photohub-test-library")


def _resolver() -> VirtualPathResolver:
    return VirtualPathResolver(LIB, prefix="/assets")


def _file(rel: str, size: int = 10, mtime: float = 100.0) -> DiscoveredFile:
    full = _resolver().library_root / rel
    return DiscoveredFile(
        name=full.name, full_path=full, size=size, created=50.0, modified=mtime,
        extension=full.suffix.lower(), media_type=MediaType.IMAGE,
    )


def _asset(asset_id: int, rel: str, checksum: str, size: int = 10, mtime: float = 100.0, scanned_at: float = 1.0) -> Asset:
    return Asset(
        id=asset_id, path=f"/assets/{rel}", filename=Path(rel).name, extension=".jpg",
        media_type=MediaType.IMAGE, checksum=checksum, size=size, created_date=50.0,
        modified_date=mtime, scanned_at=scanned_at,
    )


def _hasher(mapping: dict[str, str]):
    calls: list[str] = []

    async def _hash(path, *_args):
        calls.append(Path(path).name)
        return mapping[Path(path).name]

    _hash.calls = calls
    return _hash


def _detector(assets, files, hasher) -> ChangeDetector:
    resolver = _resolver()
    return ChangeDetector(
        assets, {resolver.virtualize(f.full_path) for f in files}, resolver, hash_file=hasher, tolerance=1.0, scanned_at=500.0
    )


@pytest.mark.asyncio
async def test_unchanged_file_is_not_hashed():
    files = [_file("a.jpg")]
    hasher = _hasher({})
    detector = _detector([_asset(1, "a.jpg", "h1")], files, hasher)
    change = await detector.classify(files[0])
    assert change.kind == ChangeKind.UNCHANGED
    assert change.checksum is None
    assert hasher.calls == []


@pytest.mark.asyncio
async def test_new_file():
    files = [_file("b.jpg")]
    detector = _detector([_asset(1, "a.jpg", "h1")], files + [_file("a.jpg")], _hasher({"b.jpg": "h2"}))
    change = await detector.classify(files[0])
    assert change.kind == ChangeKind.NEW
    assert change.asset.id is None
    assert change.asset.path == "/assets/b.jpg"
    assert change.asset.checksum == "h2"
    assert change.asset.scanned_at == 500.0


@pytest.mark.asyncio
async def test_updated_content_keeps_id():
    files = [_file("a.jpg", size=20, mtime=200.0)]
    detector = _detector([_asset(1, "a.jpg", "h1")], files, _hasher({"a.jpg": "h9"}))
    change = await detector.classify(files[0])
    assert change.kind == ChangeKind.UPDATED
    assert change.asset.id == 1
    assert change.asset.checksum == "h9"
    assert change.asset.size == 20
    assert change.asset.modified_date == 200.0


@pytest.mark.asyncio
async def test_touched_file_with_same_content_is_updated():
    files = [_file("a.jpg", mtime=300.0)]
    detector = _detector([_asset(1, "a.jpg", "h1")], files, _hasher({"a.jpg": "h1"}))
    change = await detector.classify(files[0])
    assert change.kind == ChangeKind.UPDATED
    assert change.asset.checksum == "h1"
    assert change.asset.modified_date == 300.0


@pytest.mark.asyncio
async def test_move_preserves_id():
    files = [_file("2024/a.jpg")]
    detector = _detector([_asset(7, "2023/a.jpg", "h1")], files, _hasher({"a.jpg": "h1"}))
    change = await detector.classify(files[0])
    assert change.kind == ChangeKind.MOVED
    assert change.asset.id == 7
    assert change.previous_path == "/assets/2023/a.jpg"
    assert change.asset.path == "/assets/2024/a.jpg"
    assert detector.by_path["/assets/2024/a.jpg"] is change.asset
    assert "/assets/2023/a.jpg" not in detector.by_path


@pytest.mark.asyncio
async def test_copy_of_present_file_is_duplicate():
    files = [_file("a.jpg"), _file("copy.jpg")]
    detector = _detector([_asset(1, "a.jpg", "h1")], files, _hasher({"copy.jpg": "h1"}))
    assert (await detector.classify(files[0])).kind == ChangeKind.UNCHANGED
    change = await detector.classify(files[1])
    assert change.kind == ChangeKind.DUPLICATE
    assert detector.resolve_deferred() == []


@pytest.mark.asyncio
async def test_only_one_file_claims_a_moved_entry():
    files = [_file("x/a.jpg"), _file("y/a.jpg")]
    detector = _detector([_asset(1, "old/a.jpg", "h1")], files, _hasher({"a.jpg": "h1"}))
    first = await detector.classify(files[0])
    second = await detector.classify(files[1])
    assert first.kind == ChangeKind.MOVED
    assert second.kind == ChangeKind.DUPLICATE


@pytest.mark.asyncio
async def test_duplicate_promoted_when_original_changes_later():
    files = [_file("a_copy.jpg"), _file("b.jpg", size=99, mtime=999.0)]
    hashes = {"a_copy.jpg": "h1", "b.jpg": "h2"}
    detector = _detector([_asset(1, "b.jpg", "h1")], files, _hasher(hashes))
    assert (await detector.classify(files[0])).kind == ChangeKind.DUPLICATE
    assert (await detector.classify(files[1])).kind == ChangeKind.UPDATED
    promoted = detector.resolve_deferred()
    assert [c.kind for c in promoted] == [ChangeKind.NEW]
    assert promoted[0].asset.path == "/assets/a_copy.jpg"


@pytest.mark.asyncio
async def test_most_recent_entry_wins_move():
    files = [_file("new/a.jpg")]
    assets = [
        _asset(1, "old1/a.jpg", "h1", scanned_at=10.0),
        _asset(2, "old2/a.jpg", "h1", scanned_at=20.0),
    ]
    detector = _detector(assets, files, _hasher({"a.jpg": "h1"}))
    change = await detector.classify(files[0])
    assert change.kind == ChangeKind.MOVED
    assert change.asset.id == 2


@pytest.mark.asyncio
async def test_hash_failure_is_reported():
    files = [_file("a.jpg")]

    async def _broken(_path, *_args):
        raise PermissionError("denied")

    detector = _detector([], files, _broken)
    change = await detector.classify(files[0])
    assert change.kind == ChangeKind.FAILED
    assert "denied" in change.error


@pytest.mark.asyncio
async def test_second_file_with_same_catalog_path_is_skipped():
    files = [_file("a.jpg"), _file("a.jpg")]
    hasher = _hasher({"a.jpg": "h1"})
    detector = _detector([], files, hasher)
    first = await detector.classify(files[0])
    second = await detector.classify(files[1])
    assert first.kind == ChangeKind.NEW
    assert second.kind == ChangeKind.DUPLICATE
    assert second.checksum is None
    assert hasher.calls == ["a.jpg"]
    assert detector.resolve_deferred() == []
