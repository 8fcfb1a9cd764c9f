"""In-flight job book-keeping for graceful shutdown.

The orchestrator registers a job when it accepts the request and unregisters
it once the job's workspace has been released, so "registered" means "owns a
workspace or is about to".  Shutdown stops admissions and waits for the count
to reach zero; jobs still present when the wait gives up are logged with their
state and workspace, and the final sweep removes what they left behind.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import anyio
from loguru import logger

if TYPE_CHECKING:
    from sdkforge.build_runtime.context import BuildJob


class ShuttingDownError(RuntimeError):
    """A job arrived after shutdown began."""


class JobRegistry:
    """Set of jobs that have been accepted and not yet cleaned up."""

    def __init__(self) -> None:
        self._active: dict[str, BuildJob] = {}
        self._idle = asyncio.Event()
        self._idle.set()
        self._accepting = True

    def register(self, job: BuildJob) -> None:
        if not self._accepting:
            msg = f"Job {job.job_id} refused: shutting down"
            raise ShuttingDownError(msg)
        self._active[job.job_id] = job
        self._idle.clear()
        logger.debug("Job {} ({}) admitted, {} in flight", job.job_id, job.kind, len(self._active))

    def unregister(self, job_id: str) -> None:
        self._active.pop(job_id, None)
        if not self._active:
            self._idle.set()

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def is_shutting_down(self) -> bool:
        return not self._accepting

    def describe_active(self) -> list[str]:
        """One line per in-flight job: id, kind, state and workspace."""
        return [
            f"{job.job_id} ({job.kind}, state={job.state}, workspace={job.workspace or '-'})"
            for job in self._active.values()
        ]

    def begin_shutdown(self) -> None:
        """Refuse new jobs from now on."""
        self._accepting = False
        if self._active:
            logger.info("Refusing new jobs; {} still in flight: {}", len(self._active), "; ".join(self.describe_active()))
        else:
            logger.info("Refusing new jobs; none in flight")

    async def wait_until_drained(self, timeout: float | None = None) -> bool:
        """Wait for every in-flight job to clean up.

        Returns ``False`` if *timeout* seconds pass first; the stuck jobs are
        logged so their workspaces can be matched to the final sweep.
        """
        if self._active:
            with anyio.move_on_after(timeout):
                await self._idle.wait()
        if not self._active:
            return True
        for line in self.describe_active():
            logger.warning("Drain gave up after {}s; job still in flight: {}", timeout, line)
        return False
