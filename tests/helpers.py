"""Test helpers shared across modules: fake toolchain commands and sample specs."""

from __future__ import annotations

import io
import shlex
import sys
import zipfile
from pathlib import Path

FAKE_TOOL = Path(__file__).parent / "fake_tool.py"

VALID_SPEC = b"""\
openapi: 3.0.3
info:
  title: Acme API
  version: 1.0.0
paths:
  /ping:
    get:
      operationId: ping
      responses:
        "200":
          description: pong
"""

MALFORMED_SPEC = b"openapi: [3.0.3\ninfo: {title: broken\n"


def fake_command(role: str) -> str:
    """Command line that runs the fake ``npm`` or ``fern``."""
    return shlex.join([sys.executable, str(FAKE_TOOL), role])


def spec_with_marker(marker: str) -> bytes:
    """A valid spec carrying an ``x-fake-generate`` behaviour marker."""
    return VALID_SPEC + f"x-fake-generate: {marker}\n".encode()


def residual_workspaces(root: Path) -> list[Path]:
    """Entries left under a workspace root (empty when everything was cleaned)."""
    return sorted(root.iterdir()) if root.exists() else []


def open_zip(data: bytes) -> zipfile.ZipFile:
    return zipfile.ZipFile(io.BytesIO(data))
