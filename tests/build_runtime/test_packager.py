"""Unit tests for artifact packaging (no tools required)."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from sdkforge.build_runtime.errors import PackagingError
from sdkforge.build_runtime.execution.packager import ARCHIVE_NAME, collect_files, pack
from sdkforge.build_runtime.models.enums import PackagingFailure


def _write_sdk(workspace: Path) -> Path:
    out = workspace / "generated" / "typescript"
    (out / "src" / "api").mkdir(parents=True)
    (out / "README.md").write_text("# acme\n")
    (out / "src" / "index.ts").write_text("export {};\n")
    (out / "src" / "api" / "client.ts").write_text("export class Client {}\n")
    return out


def test_pack_layout(tmp_path: Path) -> None:
    _write_sdk(tmp_path)

    archive = pack(tmp_path, "generated/typescript")

    assert archive == tmp_path / ARCHIVE_NAME
    with zipfile.ZipFile(archive) as zf:
        assert zf.namelist() == [
            "generated/typescript/README.md",
            "generated/typescript/src/api/client.ts",
            "generated/typescript/src/index.ts",
        ]
        assert zf.read("generated/typescript/README.md") == b"# acme\n"
        assert all(info.compress_type == zipfile.ZIP_DEFLATED for info in zf.infolist())


def test_pack_ignores_siblings(tmp_path: Path) -> None:
    _write_sdk(tmp_path)
    (tmp_path / "fern").mkdir()
    (tmp_path / "fern" / "generators.yml").write_text("groups: {}\n")

    with zipfile.ZipFile(pack(tmp_path, "generated/typescript")) as zf:
        assert not any(name.startswith("fern/") for name in zf.namelist())


def test_pack_missing_output(tmp_path: Path) -> None:
    (tmp_path / "generated").mkdir()

    with pytest.raises(PackagingError, match="not found") as exc_info:
        pack(tmp_path, "generated/python")

    assert exc_info.value.reason == PackagingFailure.MISSING
    assert not (tmp_path / ARCHIVE_NAME).exists()


def test_pack_empty_output(tmp_path: Path) -> None:
    # Directories alone do not count as output.
    (tmp_path / "generated" / "go" / "pkg").mkdir(parents=True)

    with pytest.raises(PackagingError, match="no files") as exc_info:
        pack(tmp_path, "generated/go")

    assert exc_info.value.reason == PackagingFailure.EMPTY
    assert not (tmp_path / ARCHIVE_NAME).exists()


def test_collect_files_is_sorted(tmp_path: Path) -> None:
    out = _write_sdk(tmp_path)

    files = collect_files(out)

    assert files == sorted(files)
    assert len(files) == 3
