import pytest

from phub_backend.features.index.folder_manager import FolderHierarchy


@pytest.mark.asyncio
async def test_ensure_creates_ancestors_once(services):
    catalog = services["catalog"]
    hierarchy = FolderHierarchy(catalog)

    leaf = await hierarchy.ensure("/assets/2023/trip")
    assert leaf.path == "/assets/2023/trip"
    assert leaf.name == "trip"
    parent = await catalog.get_folder_by_path("/assets/2023")
    root = await catalog.get_folder_by_path("/assets")
    assert leaf.parent_id == parent.id
    assert parent.parent_id == root.id
    assert root.parent_id is None
    assert [f.path for f in hierarchy.created] == ["/assets", "/assets/2023", "/assets/2023/trip"]

    again = await hierarchy.ensure("/assets/2023/trip/")
    assert again.id == leaf.id
    assert len(await catalog.load_folders()) == 3


@pytest.mark.asyncio
async def test_ensure_reuses_existing_rows(services):
    catalog = services["catalog"]
    first = await FolderHierarchy(catalog).ensure("/assets/a")
    fresh = FolderHierarchy(catalog)
    second = await fresh.ensure("/assets/a/b")
    assert second.parent_id == first.id
    assert [f.path for f in fresh.created] == ["/assets/a/b"]


@pytest.mark.asyncio
async def test_ensure_empty_path_is_none(services):
    assert await FolderHierarchy(services["catalog"]).ensure("") is None
