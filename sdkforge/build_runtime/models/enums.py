"""Shared enumerations used across the build runtime."""

from __future__ import annotations

from enum import StrEnum

# -- Job ---------------------------------------------------------------------


class JobKind(StrEnum):
    GENERATE = "generate"
    VALIDATE = "validate"


class JobState(StrEnum):
    """Lifecycle of one build job, in execution order."""

    RECEIVED = "received"
    WORKSPACE_READY = "workspace_ready"
    MATERIALIZED = "materialized"
    TOOL_AVAILABLE = "tool_available"
    TOOL_INSTALLED = "tool_installed"
    PROJECT_STAGED = "project_staged"
    INVOKED = "invoked"

    # Terminal branches
    VALIDATED = "validated"
    PACKAGED = "packaged"
    DELIVERED = "delivered"
    CLEANED = "cleaned"


# -- External tool -----------------------------------------------------------


class CommandKind(StrEnum):
    """Commands the tool invoker knows how to run."""

    ENSURE_AVAILABLE = "ensure-available"
    INSTALL = "install"
    CHECK = "check"
    GENERATE = "generate"


# -- Packaging ---------------------------------------------------------------


class PackagingFailure(StrEnum):
    MISSING = "missing"
    EMPTY = "empty"
