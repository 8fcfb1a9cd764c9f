"""API response schemas.

These thin schemas sit between HTTP and the execution layer.  They are
separate from the domain models in ``job.py`` because they keep the wire
format (``errors``, ``details``) stable independently of the internals.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from sdkforge.build_runtime.models.job import ValidationReport


class ToolOutput(BaseModel):
    """Captured subprocess output attached to failures."""

    stdout: str = ""
    stderr: str = ""


class HealthResponse(BaseModel):
    status: str = "OK"
    message: str = "SDK generator server is running"


class ValidationResponse(BaseModel):
    """Result of ``POST /check``.  A failing check is still a 200."""

    valid: bool
    message: str
    errors: list[str] = Field(default_factory=list, description="Diagnostic lines, in tool output order.")
    details: ToolOutput | None = None

    @classmethod
    def from_report(cls, report: ValidationReport) -> ValidationResponse:
        if report.valid:
            return cls(valid=True, message="OpenAPI specification is valid")
        return cls(
            valid=False,
            message="OpenAPI specification has validation errors",
            errors=report.diagnostics,
            details=ToolOutput(stdout=report.stdout, stderr=report.stderr),
        )


class ErrorResponse(BaseModel):
    """Failure payload for any job error."""

    error: str
    details: ToolOutput | None = None
    diagnostics: list[str] = Field(default_factory=list)
