import os
from pathlib import Path

from phub_backend.path_utils import (
    VirtualPathResolver,
    folder_depth,
    normalize_folder_path,
    parent_folder_path,
)


def test_normalize_folder_path():
    assert normalize_folder_path("") == ""
    assert normalize_folder_path("/assets//2023/") == "/assets/2023"
    assert normalize_folder_path("C:\\Photos\\2023") == "C:/Photos/2023"


def test_parent_and_depth():
    assert parent_folder_path("/assets/2023/trip") == "/assets/2023"
    assert parent_folder_path("/assets") == ""
    assert folder_depth("/assets/2023/trip") == 3


def test_virtualize_inside_library(tmp_path):
    resolver = VirtualPathResolver(tmp_path, prefix="/assets")
    assert resolver.virtualize(tmp_path / "2023" / "a.jpg") == "/assets/2023/a.jpg"
    assert resolver.virtualize(tmp_path) == "/assets"


def test_virtualize_outside_library(tmp_path):
    resolver = VirtualPathResolver(tmp_path / "lib", prefix="/assets")
    outside = tmp_path / "other" / "b.jpg"
    assert resolver.virtualize(outside) == normalize_folder_path(str(outside))
    assert not resolver.is_managed(outside)


def test_resolve_round_trip(tmp_path):
    resolver = VirtualPathResolver(tmp_path, prefix="/assets")
    assert resolver.resolve("/assets/2023/a.jpg") == tmp_path.resolve() / "2023" / "a.jpg"
    assert resolver.resolve("/assets") == tmp_path.resolve()
    assert resolver.resolve("/elsewhere/c.jpg") == Path("/elsewhere/c.jpg")
    assert resolver.virtual_dir_of("/assets/2023/a.jpg") == "/assets/2023"


def test_virtualize_keeps_symlinked_file_name(tmp_path):
    target = tmp_path / "a.jpg"
    target.write_bytes(b"x")
    link = tmp_path / "link.jpg"
    os.symlink(target, link)
    resolver = VirtualPathResolver(tmp_path, prefix="/assets")
    assert resolver.virtualize(link) == "/assets/link.jpg"
    assert resolver.virtualize(target) == "/assets/a.jpg"
    assert resolver.is_managed(link)


def test_virtualize_through_symlinked_library_root(tmp_path):
    real = tmp_path / "real"
    (real / "2023").mkdir(parents=True)
    alias = tmp_path / "alias"
    os.symlink(real, alias)
    resolver = VirtualPathResolver(alias, prefix="/assets")
    assert resolver.virtualize(alias / "2023" / "a.jpg") == "/assets/2023/a.jpg"
    assert resolver.virtualize(alias) == "/assets"


def test_virtual_prefix_matches_whole_segment(tmp_path):
    resolver = VirtualPathResolver(tmp_path, prefix="/assets")
    assert resolver.is_virtual("/assets")
    assert resolver.is_virtual("/assets/2023")
    assert not resolver.is_virtual("/assets2/2023")
    assert not resolver.is_virtual("/assets-backup")
    assert not resolver.is_virtual("/ASSETS/2023")
    assert resolver.resolve("/ASSETS/2023") == Path("/ASSETS/2023")
