"""End-to-end tests for JobOrchestrator against the fake toolchain.

Every test ends by asserting that the workspace root holds nothing: cleanup
must happen on success, on failure and on cancellation alike.
"""

from __future__ import annotations

import json
from pathlib import Path

import anyio
import pytest

from sdkforge.build_runtime.errors import (
    PackagingError,
    ResourceError,
    ToolInstallError,
    ToolInvocationError,
    ToolUnavailableError,
    ValidationError,
)
from sdkforge.build_runtime.execution.orchestrator import ArchiveDelivery, JobOrchestrator, suggested_filename
from sdkforge.build_runtime.models.enums import JobKind, JobState, PackagingFailure
from sdkforge.build_runtime.models.job import JobRequest, ValidationReport
from sdkforge.build_runtime.settings import SdkforgeSettings
from tests.helpers import MALFORMED_SPEC, VALID_SPEC, open_zip, residual_workspaces, spec_with_marker


def _validate(spec: bytes | None = VALID_SPEC) -> JobRequest:
    return JobRequest(kind=JobKind.VALIDATE, spec=spec)


def _generate(
    spec: bytes | None = VALID_SPEC,
    language: str | None = "typescript",
    package_name: str | None = "acme-client",
    options: dict | None = None,
) -> JobRequest:
    return JobRequest(
        kind=JobKind.GENERATE,
        spec=spec,
        target_language=language,
        package_name=package_name,
        options=options or {},
    )


async def _drain(delivery: ArchiveDelivery) -> bytes:
    return b"".join([chunk async for chunk in delivery.iter_bytes(chunk_size=512)])


def _assert_clean(orchestrator: JobOrchestrator, tmp_root: Path) -> None:
    assert residual_workspaces(tmp_root) == []
    assert orchestrator.registry.active_count == 0


# ---------------------------------------------------------------------------
# Validate
# ---------------------------------------------------------------------------


async def test_validate_valid_spec(orchestrator: JobOrchestrator, tmp_root: Path) -> None:
    report = await orchestrator.validate(_validate())

    assert report.valid is True
    assert report.diagnostics == []
    assert "0 errors" in report.stdout
    _assert_clean(orchestrator, tmp_root)


async def test_validate_malformed_spec(orchestrator: JobOrchestrator, tmp_root: Path) -> None:
    report = await orchestrator.validate(_validate(MALFORMED_SPEC))

    assert report.valid is False
    assert report.diagnostics
    assert report.diagnostics[0] == "[api]: openapi/openapi.yaml"
    assert all(line.strip() == line and line for line in report.diagnostics)
    _assert_clean(orchestrator, tmp_root)


async def test_validate_not_openapi(orchestrator: JobOrchestrator, tmp_root: Path) -> None:
    report = await orchestrator.validate(_validate(b"swagger_is_not_here: true\n"))

    assert report.valid is False
    assert "Missing required key: openapi" in report.diagnostics
    _assert_clean(orchestrator, tmp_root)


async def test_validate_missing_spec_touches_nothing(orchestrator: JobOrchestrator, tmp_root: Path) -> None:
    with pytest.raises(ValidationError, match="No OpenAPI spec"):
        await orchestrator.validate(_validate(None))

    assert not tmp_root.exists()
    assert orchestrator.registry.active_count == 0


async def test_run_dispatches_on_kind(orchestrator: JobOrchestrator, tmp_root: Path) -> None:
    report = await orchestrator.run(_validate())
    assert isinstance(report, ValidationReport)

    delivery = await orchestrator.run(_generate())
    assert isinstance(delivery, ArchiveDelivery)
    await delivery.close()
    _assert_clean(orchestrator, tmp_root)


# ---------------------------------------------------------------------------
# Generate
# ---------------------------------------------------------------------------


async def test_generate_streams_archive(orchestrator: JobOrchestrator, tmp_root: Path) -> None:
    delivery = await orchestrator.generate(_generate())

    assert delivery.filename == "acme-client-typescript-sdk.zip"
    assert delivery.media_type == "application/zip"
    assert delivery.path.is_file()
    assert delivery.job.state == JobState.PACKAGED

    data = await _drain(delivery)

    assert len(data) == delivery.size
    with open_zip(data) as zf:
        names = zf.namelist()
        assert "generated/typescript/README.md" in names
        generator = json.loads(zf.read("generated/typescript/src/client.json"))
    assert generator["name"] == "fernapi/fern-typescript-node-sdk"
    assert generator["config"]["name"] == "acme-client"

    assert delivery.job.history[-2:] == [JobState.DELIVERED, JobState.CLEANED]
    _assert_clean(orchestrator, tmp_root)


async def test_generate_python_with_options(orchestrator: JobOrchestrator, tmp_root: Path) -> None:
    delivery = await orchestrator.generate(
        _generate(language="python", package_name="acme", options={"includeTests": "true"})
    )
    data = await _drain(delivery)

    with open_zip(data) as zf:
        generator = json.loads(zf.read("generated/python/src/client.json"))
    assert generator["config"] == {"name": "acme", "include_examples": True, "include_tests": True}
    _assert_clean(orchestrator, tmp_root)


async def test_generate_unknown_language_falls_back(orchestrator: JobOrchestrator, tmp_root: Path) -> None:
    delivery = await orchestrator.generate(_generate(language="cobol"))
    data = await _drain(delivery)

    # The archive is TypeScript, the filename keeps the requested language.
    assert delivery.filename == "acme-client-cobol-sdk.zip"
    with open_zip(data) as zf:
        assert "generated/typescript/README.md" in zf.namelist()
    _assert_clean(orchestrator, tmp_root)


@pytest.mark.parametrize(
    ("request_kwargs", "match"),
    [
        ({"spec": None}, "No OpenAPI spec"),
        ({"language": None}, "Language"),
        ({"language": "  "}, "Language"),
        ({"package_name": ""}, "Package name"),
        ({"options": {"includeExamples": "perhaps"}}, "includeExamples"),
    ],
)
async def test_generate_rejects_bad_input(
    orchestrator: JobOrchestrator, tmp_root: Path, request_kwargs: dict, match: str
) -> None:
    with pytest.raises(ValidationError, match=match):
        await orchestrator.generate(_generate(**request_kwargs))

    # Rejected before a workspace is allocated.
    assert not tmp_root.exists()
    assert orchestrator.registry.active_count == 0


async def test_generate_tool_failure_never_packages(
    orchestrator: JobOrchestrator, tmp_root: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _pack_must_not_run(*_args, **_kwargs):
        raise AssertionError("pack called after a failed generate")

    monkeypatch.setattr("sdkforge.build_runtime.execution.orchestrator.pack", _pack_must_not_run)

    with pytest.raises(ToolInvocationError) as exc_info:
        await orchestrator.generate(_generate(spec=spec_with_marker("fail")))

    assert "Failed to generate SDK" in exc_info.value.stderr
    assert exc_info.value.diagnostics[0] == "Failed to generate SDK"
    _assert_clean(orchestrator, tmp_root)


@pytest.mark.parametrize(
    ("marker", "reason"),
    [("nothing", PackagingFailure.MISSING), ("empty", PackagingFailure.EMPTY)],
)
async def test_generate_packaging_failure(
    orchestrator: JobOrchestrator, tmp_root: Path, marker: str, reason: PackagingFailure
) -> None:
    with pytest.raises(PackagingError) as exc_info:
        await orchestrator.generate(_generate(spec=spec_with_marker(marker)))

    assert exc_info.value.reason == reason
    _assert_clean(orchestrator, tmp_root)


async def test_runtime_unavailable(
    orchestrator: JobOrchestrator, tmp_root: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("FAKE_NPM_FAIL", "version")

    with pytest.raises(ToolUnavailableError):
        await orchestrator.generate(_generate())
    with pytest.raises(ToolUnavailableError):
        await orchestrator.validate(_validate())

    _assert_clean(orchestrator, tmp_root)


async def test_runtime_not_executable(settings: SdkforgeSettings, tmp_root: Path, tmp_path: Path) -> None:
    script = tmp_path / "npm"
    script.write_text("#!/bin/sh\necho 10.8.2\n")
    script.chmod(0o644)
    orchestrator = JobOrchestrator(settings.model_copy(update={"tool_runtime_command": str(script)}))

    with pytest.raises(ToolUnavailableError) as exc_info:
        await orchestrator.validate(_validate())

    assert exc_info.value.result.exit_code == 126
    _assert_clean(orchestrator, tmp_root)


async def test_install_failure(orchestrator: JobOrchestrator, tmp_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FAKE_NPM_FAIL", "install")

    with pytest.raises(ToolInstallError):
        await orchestrator.generate(_generate())

    _assert_clean(orchestrator, tmp_root)


async def test_release_failure_does_not_mask_result(
    orchestrator: JobOrchestrator, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _broken_release(path):
        raise ResourceError(f"cannot remove {path}")

    monkeypatch.setattr(orchestrator.workspaces, "release", _broken_release)

    report = await orchestrator.validate(_validate())

    assert report.valid is True
    assert orchestrator.registry.active_count == 0


# ---------------------------------------------------------------------------
# Delivery lifecycle
# ---------------------------------------------------------------------------


async def test_close_without_streaming(orchestrator: JobOrchestrator, tmp_root: Path) -> None:
    delivery = await orchestrator.generate(_generate())
    assert len(residual_workspaces(tmp_root)) == 1

    await delivery.close()
    await delivery.close()

    assert delivery.job.is_cleaned
    assert JobState.DELIVERED not in delivery.job.history
    _assert_clean(orchestrator, tmp_root)


async def test_abandoned_stream_releases_workspace(orchestrator: JobOrchestrator, tmp_root: Path) -> None:
    delivery = await orchestrator.generate(_generate())

    stream = delivery.iter_bytes(chunk_size=16)
    first = await stream.__anext__()
    assert first.startswith(b"PK")
    await stream.aclose()

    assert JobState.DELIVERED not in delivery.job.history
    _assert_clean(orchestrator, tmp_root)


async def test_cancelled_job_cleans_up(
    orchestrator: JobOrchestrator, tmp_root: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("FAKE_FERN_GENERATE_SLEEP", "1")

    with anyio.move_on_after(0.3) as scope:
        await orchestrator.generate(_generate())

    assert scope.cancelled_caught
    _assert_clean(orchestrator, tmp_root)


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


async def test_concurrent_jobs_are_isolated(
    orchestrator: JobOrchestrator, tmp_root: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    install_log = tmp_path / "installs.log"
    monkeypatch.setenv("FAKE_NPM_LOG", str(install_log))
    results: dict[str, bytes] = {}

    async def _job(n: int) -> None:
        delivery = await orchestrator.generate(_generate(package_name=f"pkg-{n}"))
        results[f"pkg-{n}"] = await _drain(delivery)

    async with anyio.create_task_group() as tg:
        for n in range(10):
            tg.start_soon(_job, n)

    assert len(results) == 10
    for package_name, data in results.items():
        with open_zip(data) as zf:
            generator = json.loads(zf.read("generated/typescript/src/client.json"))
        assert generator["config"]["name"] == package_name

    assert len(install_log.read_text().splitlines()) == 1
    _assert_clean(orchestrator, tmp_root)


# ---------------------------------------------------------------------------
# Filenames
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("package_name", "language", "expected"),
    [
        ("acme-client", "typescript", "acme-client-typescript-sdk.zip"),
        ("@acme/client", "typescript", "acme-client-typescript-sdk.zip"),
        ("acme client", "Go", "acme-client-Go-sdk.zip"),
        ("../../etc", "python", "etc-python-sdk.zip"),
        ("???", "ruby", "sdk-ruby-sdk.zip"),
    ],
)
def test_suggested_filename(package_name: str, language: str, expected: str) -> None:
    assert suggested_filename(package_name, language) == expected
