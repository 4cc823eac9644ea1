import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from PIL import Image

from repo_root import REPO_ROOT

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture
def library(tmp_path):
    root = tmp_path / "library"
    root.mkdir()
    return root


@pytest.fixture
def thumbnails_root(tmp_path):
    return tmp_path / "thumbnails"


@pytest.fixture
def make_image():
    """Factory writing a small solid-color image; color drives the content hash."""

    def _make(path: Path, color=(200, 30, 30), size=(64, 48), fmt=None, mtime=None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", size, color=color).save(path, fmt)
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    return _make


@pytest_asyncio.fixture
async def services(tmp_path, library, thumbnails_root):
    from phub_backend.deps import build_services

    db_path = str(tmp_path / "test_services.db")
    svc_res = await build_services(db_path, library_root=library, thumbnails_root=thumbnails_root)
    assert svc_res.ok, svc_res.error
    svc = svc_res.data
    try:
        yield svc
    finally:
        await svc["db"].aclose()
