"""Data models for the build runtime."""

from sdkforge.build_runtime.models.api import (
    ErrorResponse,
    HealthResponse,
    ToolOutput,
    ValidationResponse,
)
from sdkforge.build_runtime.models.enums import (
    CommandKind,
    JobKind,
    JobState,
    PackagingFailure,
)
from sdkforge.build_runtime.models.job import JobRequest, ToolResult, ValidationReport

__all__ = [
    # Enums
    "CommandKind",
    # API schemas
    "ErrorResponse",
    "HealthResponse",
    "JobKind",
    # Job
    "JobRequest",
    "JobState",
    "PackagingFailure",
    "ToolOutput",
    "ToolResult",
    "ValidationReport",
    "ValidationResponse",
]
