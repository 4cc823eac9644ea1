import subprocess
import sys

import pytest

from phub_backend import deps as deps_mod
from phub_backend.shared import Result
from repo_root import REPO_ROOT


def test_resolve_db_path_default_and_custom(monkeypatch):
    monkeypatch.setattr(deps_mod, "INDEX_DB", "/data/default.db")
    assert deps_mod._resolve_db_path(None) == "/data/default.db"
    assert deps_mod._resolve_db_path("/data/x.db") == "/data/x.db"


def test_init_db_or_error_failure(monkeypatch):
    class _BadSqlite:
        def __init__(self, *_args, **_kwargs):
            raise OSError("boom")

    monkeypatch.setattr(deps_mod, "Sqlite", _BadSqlite)
    out = deps_mod._init_db_or_error("/data/db.sqlite")
    assert out.ok is False
    assert out.code == "DB_ERROR"


@pytest.mark.asyncio
async def test_migrate_db_or_error_propagates_code(monkeypatch):
    async def _migrate(_db):
        return Result.Err("DB_ERROR", "schema too new")

    monkeypatch.setattr(deps_mod, "migrate_schema", _migrate)
    out = await deps_mod._migrate_db_or_error(object())
    assert out.ok is False
    assert out.code == "DB_ERROR"
    assert "schema too new" in str(out.error)


@pytest.mark.asyncio
async def test_build_services_contains_core_keys(tmp_path):
    out = await deps_mod.build_services(
        str(tmp_path / "svc.db"),
        library_root=tmp_path / "lib",
        thumbnails_root=tmp_path / "thumbs",
    )
    assert out.ok, out.error
    svc = out.data
    try:
        for key in ("db", "catalog", "resolver", "exif", "recognition", "thumbnails", "ml_jobs", "enricher", "synchronizer"):
            assert key in svc
        assert svc["resolver"].library_root == (tmp_path / "lib").resolve()
        assert svc["thumbnails"].root == tmp_path / "thumbs"
        assert svc["synchronizer"].enricher is svc["enricher"]
    finally:
        await svc["db"].aclose()


@pytest.mark.asyncio
async def test_build_services_closes_db_when_migration_fails(monkeypatch, tmp_path):
    closed = []

    class _Db:
        def __init__(self, *_args, **_kwargs):
            pass

        async def aclose(self):
            closed.append(True)

    async def _migrate(_db):
        return Result.Err("DB_ERROR", "nope")

    monkeypatch.setattr(deps_mod, "Sqlite", _Db)
    monkeypatch.setattr(deps_mod, "migrate_schema", _migrate)
    out = await deps_mod.build_services(str(tmp_path / "x.db"), library_root=tmp_path, thumbnails_root=tmp_path)
    assert out.ok is False
    assert closed == [True]


@pytest.mark.parametrize(
    "module",
    [
        "phub_backend.deps",
        "phub_backend.routes",
        "phub_backend.features.duplicates.service",
        "phub_backend.features.index.scan_streaming",
    ],
)
def test_entry_modules_import_in_fresh_interpreter(module):
    proc = subprocess.run(
        [sys.executable, "-c", f"import {module}"],
        cwd=str(REPO_ROOT),
        capture_output=True,
        text=True,
        timeout=60,
    )
    assert proc.returncode == 0, proc.stderr
