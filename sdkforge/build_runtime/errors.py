"""Build job error taxonomy.

The execution layer raises these and never HTTP exceptions -- translating
them to status codes is the app's responsibility (see ``app.py``).

- ``ValidationError``: missing or malformed caller input, detected before any
  subprocess runs.
- ``ResourceError``: workspace allocation, materialization or other
  filesystem failure.
- ``ToolUnavailableError``: the external runtime is missing.
- ``ToolInstallError``: the pinned tool version failed to install.
- ``ToolInvocationError``: ``check`` / ``generate`` exited non-zero.
- ``PackagingError``: the tool succeeded but its output is missing or empty.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from sdkforge.build_runtime.models.enums import PackagingFailure

if TYPE_CHECKING:
    from sdkforge.build_runtime.models.job import ToolResult

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")


def extract_diagnostics(stderr: str, stdout: str = "") -> list[str]:
    """Split tool output into trimmed, non-empty lines.

    stderr is preferred; stdout is used only when stderr has nothing to say.
    Terminal colour codes are removed.
    """
    text = stderr if stderr.strip() else stdout
    lines = (_ANSI_ESCAPE.sub("", line).strip() for line in text.splitlines())
    return [line for line in lines if line]


class JobError(Exception):
    """Base class for every failure a build job can surface."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def diagnostics(self) -> list[str]:
        return []


class ValidationError(JobError):
    """Raised when caller input is missing or malformed."""


class ResourceError(JobError):
    """Raised when a workspace or file inside it cannot be created or removed."""


class ToolError(JobError):
    """Raised when an external tool invocation fails.  Carries the captured output."""

    def __init__(self, message: str, result: ToolResult) -> None:
        super().__init__(message)
        self.result = result

    @property
    def stdout(self) -> str:
        return self.result.stdout

    @property
    def stderr(self) -> str:
        return self.result.stderr

    @property
    def diagnostics(self) -> list[str]:
        lines = extract_diagnostics(self.result.stderr, self.result.stdout)
        if lines:
            return lines
        if self.result.exit_code is None:
            return [f"{' '.join(self.result.command)} timed out"]
        return [f"{' '.join(self.result.command)} exited with status {self.result.exit_code}"]


class ToolUnavailableError(ToolError):
    """Raised when the external tool's runtime cannot be found or started."""


class ToolInstallError(ToolError):
    """Raised when installing the pinned tool version fails."""


class ToolInvocationError(ToolError):
    """Raised when ``check`` or ``generate`` exits non-zero."""


class PackagingError(JobError):
    """Raised when the tool reported success but left nothing to package."""

    def __init__(self, message: str, reason: PackagingFailure) -> None:
        super().__init__(message)
        self.reason = reason
