"""Artifact packaging.

A zero exit status from the generator is necessary but not sufficient: the
declared output directory must also exist and contain at least one file.
Missing and empty output are reported as distinct ``PackagingError`` reasons.

The archive lives inside the workspace and is destroyed with it::

    {workspace}/sdk.zip
        generated/{language}/...
"""

from __future__ import annotations

import zipfile
from pathlib import Path

from loguru import logger

from sdkforge.build_runtime.errors import PackagingError, ResourceError
from sdkforge.build_runtime.models.enums import PackagingFailure

ARCHIVE_NAME = "sdk.zip"
ARCHIVE_EXTENSION = "zip"
ARCHIVE_MEDIA_TYPE = "application/zip"
COMPRESSION_LEVEL = 9


def collect_files(output_dir: Path) -> list[Path]:
    """All regular files below ``output_dir``, in a stable order."""
    return sorted(p for p in output_dir.rglob("*") if p.is_file())


def pack(workspace: Path, output_subdir: str) -> Path:
    """Zip ``workspace/output_subdir`` into ``workspace/sdk.zip``.

    Entry names are relative to the workspace, so they keep the output
    subpath as their leading directories.
    """
    workspace = Path(workspace)
    output_dir = workspace / output_subdir
    if not output_dir.is_dir():
        msg = f"Generated directory not found: {output_subdir}"
        raise PackagingError(msg, PackagingFailure.MISSING)

    files = collect_files(output_dir)
    if not files:
        msg = f"Generator produced no files in {output_subdir}"
        raise PackagingError(msg, PackagingFailure.EMPTY)

    archive_path = workspace / ARCHIVE_NAME
    try:
        with zipfile.ZipFile(
            archive_path,
            "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=COMPRESSION_LEVEL,
        ) as archive:
            for path in files:
                archive.write(path, arcname=path.relative_to(workspace).as_posix())
    except OSError as exc:
        msg = f"Failed to write archive: {exc}"
        raise ResourceError(msg) from exc

    logger.debug("Archive created: {} bytes, {} files", archive_path.stat().st_size, len(files))
    return archive_path
