"""Shared test fixtures: settings wired to a fake npm / fern toolchain.

The fake tools are a Python script run through ``sys.executable`` (see
``fake_tool.py``), so no Node installation is needed.  Every test gets its
own workspace root under ``tmp_path``.

Tests needing the real toolchain should be marked with
``@pytest.mark.integration``.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from sdkforge.build_runtime.execution.orchestrator import JobOrchestrator
from sdkforge.build_runtime.settings import SdkforgeSettings
from tests.helpers import fake_command


@pytest.fixture(autouse=True)
def _clean_fake_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test with the fake tools in their default behaviour."""
    for key in ("FAKE_NPM_FAIL", "FAKE_NPM_LOG", "FAKE_FERN_GENERATE_SLEEP"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def tmp_root(tmp_path: Path) -> Path:
    return tmp_path / "tmp"


@pytest.fixture
def settings(tmp_root: Path) -> SdkforgeSettings:
    """Settings pointing at the fake toolchain and a private workspace root."""
    return SdkforgeSettings(
        _env_file=None,
        tmp_root=str(tmp_root),
        tool_runtime_command=fake_command("npm"),
        tool_command=fake_command("fern"),
        tool_timeout=60,
        api_key=None,
    )


@pytest.fixture
def orchestrator(settings: SdkforgeSettings) -> JobOrchestrator:
    return JobOrchestrator(settings)
