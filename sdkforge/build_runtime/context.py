"""Build job context.

In-flight state for one request, owned by the job orchestrator from arrival
until its workspace is cleaned.  Never shared between requests: concurrent
jobs have nothing in common but the workspace root.

State transitions follow one fixed spine::

    received -> workspace_ready -> materialized -> tool_available
      -> tool_installed -> project_staged -> invoked
      -> validated                         (validate jobs)
      -> packaged -> delivered             (generate jobs)

Any state may jump straight to ``cleaned``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

from sdkforge.build_runtime.models.enums import JobKind, JobState

if TYPE_CHECKING:
    from sdkforge.build_runtime.errors import JobError
    from sdkforge.build_runtime.execution.materializer import ProjectLayout

_NEXT: dict[JobState, frozenset[JobState]] = {
    JobState.RECEIVED: frozenset({JobState.WORKSPACE_READY}),
    JobState.WORKSPACE_READY: frozenset({JobState.MATERIALIZED}),
    JobState.MATERIALIZED: frozenset({JobState.TOOL_AVAILABLE}),
    JobState.TOOL_AVAILABLE: frozenset({JobState.TOOL_INSTALLED}),
    JobState.TOOL_INSTALLED: frozenset({JobState.PROJECT_STAGED}),
    JobState.PROJECT_STAGED: frozenset({JobState.INVOKED}),
    JobState.INVOKED: frozenset({JobState.VALIDATED, JobState.PACKAGED}),
    JobState.VALIDATED: frozenset(),
    JobState.PACKAGED: frozenset({JobState.DELIVERED}),
    JobState.DELIVERED: frozenset(),
    JobState.CLEANED: frozenset(),
}


def new_job_id() -> str:
    """Filesystem-safe identifier, unique for the process lifetime."""
    return uuid.uuid4().hex


@dataclass
class BuildJob:
    """In-flight state for a single build job."""

    # -- Identity --------------------------------------------------------------
    kind: JobKind
    job_id: str = field(default_factory=new_job_id)

    # -- Parameters ------------------------------------------------------------
    target_language: str | None = None
    package_name: str | None = None
    options: dict[str, Any] = field(default_factory=dict)

    # -- Resources (set during execution) --------------------------------------
    workspace: Path | None = None
    layout: ProjectLayout | None = None
    released: bool = False

    # -- Lifecycle -------------------------------------------------------------
    state: JobState = JobState.RECEIVED
    history: list[JobState] = field(default_factory=lambda: [JobState.RECEIVED])
    error: JobError | None = None

    def advance(self, state: JobState) -> None:
        """Move to ``state``.  Raises ``RuntimeError`` on an out-of-order transition."""
        if state != JobState.CLEANED and state not in _NEXT[self.state]:
            msg = f"Job {self.job_id}: illegal transition {self.state} -> {state}"
            raise RuntimeError(msg)
        if self.state == JobState.CLEANED:
            msg = f"Job {self.job_id} is already cleaned"
            raise RuntimeError(msg)
        logger.debug("Job {} ({}): {} -> {}", self.job_id, self.kind, self.state, state)
        self.state = state
        self.history.append(state)

    @property
    def is_cleaned(self) -> bool:
        return self.state == JobState.CLEANED
