"""Job orchestrator -- sequences one build job from request to cleanup.

The orchestrator drives a ``BuildJob`` through its state machine:

1. **Receive**: check caller input (nothing touches disk before this passes)
2. **Prepare**: allocate workspace -> materialize project -> ensure the tool
   runtime -> install the pinned tool -> verify the staged layout
3. **Invoke**: ``check`` (validate jobs) or ``generate`` (generate jobs)
4. **Finish**: build a ``ValidationReport``, or package the output into an
   ``ArchiveDelivery`` the caller streams
5. **Clean**: release the workspace

Cleanup is unconditional.  Every failure after allocation releases the
workspace before the error propagates, and a delivered archive releases it
once streaming ends -- normally, on error, on cancellation or when the
caller closes it.  This module is the only place that releases workspaces.

Failures are surfaced, never retried.  A failing ``check`` is not an error
from the caller's point of view: it becomes ``valid=False`` with the tool's
diagnostics.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from pathlib import Path

import anyio
from anyio import to_thread

from sdkforge.build_runtime.context import BuildJob
from sdkforge.build_runtime.errors import JobError, ResourceError, ToolInvocationError
from sdkforge.build_runtime.execution.invoker import ToolInvoker
from sdkforge.build_runtime.execution.materializer import ProjectMaterializer, check_inputs
from sdkforge.build_runtime.execution.packager import ARCHIVE_EXTENSION, ARCHIVE_MEDIA_TYPE, pack
from sdkforge.build_runtime.execution.workspace import WorkspaceManager
from sdkforge.build_runtime.models.enums import JobKind, JobState
from sdkforge.build_runtime.models.job import JobRequest, ValidationReport
from sdkforge.build_runtime.registry import JobRegistry
from sdkforge.build_runtime.settings import SdkforgeSettings

logger = logging.getLogger(__name__)

STREAM_CHUNK_SIZE = 64 * 1024

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def suggested_filename(package_name: str, target_language: str) -> str:
    """``<package>-<language>-sdk.zip`` with filename-unsafe characters replaced."""

    def _clean(value: str) -> str:
        return _UNSAFE_FILENAME_CHARS.sub("-", value.strip()).strip("-.") or "sdk"

    return f"{_clean(package_name)}-{_clean(target_language)}-sdk.{ARCHIVE_EXTENSION}"


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


@dataclass
class ArchiveDelivery:
    """A packaged SDK waiting to be streamed.

    The workspace (and the archive inside it) stays alive until
    ``iter_bytes`` ends or ``close`` is called, whichever comes first.
    """

    job: BuildJob
    path: Path
    filename: str
    size: int
    on_close: Callable[[BuildJob], Awaitable[None]]
    media_type: str = ARCHIVE_MEDIA_TYPE

    async def iter_bytes(self, chunk_size: int = STREAM_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Yield the archive in chunks, then release the workspace."""
        try:
            async with await anyio.open_file(self.path, "rb") as f:
                while True:
                    chunk = await f.read(chunk_size)
                    if not chunk:
                        break
                    yield chunk
            self.job.advance(JobState.DELIVERED)
        finally:
            with anyio.CancelScope(shield=True):
                await self.close()

    async def close(self) -> None:
        """Release the workspace.  Safe to call any number of times."""
        await self.on_close(self.job)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class JobOrchestrator:
    """Runs validate and generate jobs against isolated workspaces.

    Parameters
    ----------
    settings:
        Service settings.  Read once here; collaborators receive plain values.
    workspaces, materializer, invoker, registry:
        Collaborators; built from ``settings`` when omitted.
    """

    def __init__(
        self,
        settings: SdkforgeSettings,
        *,
        workspaces: WorkspaceManager | None = None,
        materializer: ProjectMaterializer | None = None,
        invoker: ToolInvoker | None = None,
        registry: JobRegistry | None = None,
    ) -> None:
        self.settings = settings
        self.workspaces = workspaces or WorkspaceManager(settings.tmp_root)
        self.materializer = materializer or ProjectMaterializer(settings.tool_version)
        self.invoker = invoker or ToolInvoker.from_settings(settings)
        self.registry = registry or JobRegistry()

    # -- Entry points ----------------------------------------------------------

    async def run(self, request: JobRequest) -> ValidationReport | ArchiveDelivery:
        """Dispatch on ``request.kind``."""
        if request.kind == JobKind.VALIDATE:
            return await self.validate(request)
        return await self.generate(request)

    async def validate(self, request: JobRequest) -> ValidationReport:
        """Run ``check`` against the spec and report diagnostics."""
        job = self._receive(request, JobKind.VALIDATE)
        try:
            await self._prepare(job, request)
            workspace = self._workspace(job)
            try:
                result = await self.invoker.check(workspace)
            except ToolInvocationError as exc:
                job.advance(JobState.INVOKED)
                report = ValidationReport(
                    valid=False,
                    diagnostics=exc.diagnostics,
                    stdout=exc.stdout,
                    stderr=exc.stderr,
                )
                logger.info("Job %s: validation errors found (%d lines)", job.job_id, len(report.diagnostics))
            else:
                job.advance(JobState.INVOKED)
                report = ValidationReport(valid=True, stdout=result.stdout, stderr=result.stderr)
                logger.info("Job %s: validation passed", job.job_id)
            job.advance(JobState.VALIDATED)
            return report
        except JobError as exc:
            self._record_failure(job, exc)
            raise
        finally:
            await self._finish(job)

    async def generate(self, request: JobRequest) -> ArchiveDelivery:
        """Generate and package an SDK.

        The returned delivery owns the workspace; stream it with
        ``iter_bytes`` or release it with ``close``.
        """
        job = self._receive(request, JobKind.GENERATE)
        try:
            await self._prepare(job, request)
            workspace = self._workspace(job)
            layout = job.layout
            assert layout is not None and layout.variant is not None  # noqa: S101

            logger.info("Job %s: generating %s SDK", job.job_id, layout.variant.language)
            await self.invoker.generate(workspace, group=layout.variant.group)
            job.advance(JobState.INVOKED)

            archive = await to_thread.run_sync(partial(pack, workspace, layout.variant.output_subpath))
            size = archive.stat().st_size
            job.advance(JobState.PACKAGED)
        except BaseException as exc:
            if isinstance(exc, JobError):
                self._record_failure(job, exc)
            await self._finish(job)
            raise

        logger.info("Job %s: archive ready (%d bytes)", job.job_id, size)
        return ArchiveDelivery(
            job=job,
            path=archive,
            filename=suggested_filename(job.package_name or "", job.target_language or ""),
            size=size,
            on_close=self._finish,
        )

    # -- Stages ----------------------------------------------------------------

    def _receive(self, request: JobRequest, kind: JobKind) -> BuildJob:
        check_inputs(request.spec, kind, request.target_language, request.package_name, request.options)
        job = BuildJob(
            kind=kind,
            target_language=request.target_language.strip() if request.target_language else None,
            package_name=request.package_name.strip() if request.package_name else None,
            options=dict(request.options),
        )
        self.registry.register(job)
        logger.info(
            "Job %s received (kind=%s, language=%s, package=%s)",
            job.job_id,
            kind,
            job.target_language,
            job.package_name,
        )
        return job

    async def _prepare(self, job: BuildJob, request: JobRequest) -> None:
        """Shared spine up to ``project_staged``."""
        job.workspace = await self.workspaces.allocate_async(job.kind.value)
        job.advance(JobState.WORKSPACE_READY)

        job.layout = await to_thread.run_sync(
            partial(
                self.materializer.materialize,
                job.workspace,
                request.spec,
                job.kind,
                job.target_language,
                job.package_name,
                job.options,
            )
        )
        job.advance(JobState.MATERIALIZED)

        await self.invoker.ensure_available(job.workspace)
        job.advance(JobState.TOOL_AVAILABLE)

        await self.invoker.install(job.workspace)
        job.advance(JobState.TOOL_INSTALLED)

        await to_thread.run_sync(job.layout.verify)
        job.advance(JobState.PROJECT_STAGED)

    @staticmethod
    def _workspace(job: BuildJob) -> Path:
        assert job.workspace is not None  # noqa: S101
        return job.workspace

    @staticmethod
    def _record_failure(job: BuildJob, exc: JobError) -> None:
        job.error = exc
        logger.error("Job %s failed in state %s: %s", job.job_id, job.state, exc.message)

    async def _finish(self, job: BuildJob) -> None:
        """Release the job's workspace and mark it cleaned.  Idempotent."""
        if job.released:
            return
        job.released = True
        with anyio.CancelScope(shield=True):
            if job.workspace is not None:
                try:
                    await self.workspaces.release_async(job.workspace)
                except ResourceError:
                    logger.exception("Job %s: error during cleanup of %s", job.job_id, job.workspace)
                else:
                    logger.info("Job %s: cleaned up %s", job.job_id, job.workspace)
            job.advance(JobState.CLEANED)
            self.registry.unregister(job.job_id)
