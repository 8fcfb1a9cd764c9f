"""Job request and tool result models.

Domain objects passed between the HTTP layer, the CLI and the execution
pipeline.  They carry already-parsed values; multipart and JSON decoding
happen in the adapters.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from sdkforge.build_runtime.models.enums import CommandKind, JobKind

# -- Request -----------------------------------------------------------------


class JobRequest(BaseModel):
    """One inbound job: what to build and from which input."""

    kind: JobKind
    spec: bytes | None = Field(default=None, repr=False, description="Raw API description (YAML or JSON).")
    target_language: str | None = None
    package_name: str | None = None
    options: dict[str, Any] = Field(default_factory=dict, description="Free-form generator toggles.")


# -- Tool --------------------------------------------------------------------


class ToolResult(BaseModel):
    """Outcome of one external tool invocation.

    ``exit_code`` is ``None`` when the process was killed on timeout.
    """

    kind: CommandKind
    command: list[str] = Field(default_factory=list)
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


# -- Validation --------------------------------------------------------------


class ValidationReport(BaseModel):
    """Structured outcome of a validate job."""

    valid: bool
    diagnostics: list[str] = Field(default_factory=list)
    stdout: str = ""
    stderr: str = ""
