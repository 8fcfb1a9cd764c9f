"""External tool invocation.

Runs the generator toolchain as a subprocess bound to one workspace:

- **ensure-available**: ``npm --version`` -- the runtime hosting the CLI.
- **install**: ``npm install -g fern-api@<version>`` -- the pinned CLI.
- **check**: ``fern check`` -- validate the materialized project.
- **generate**: ``fern generate --local [--group <group>]``.

Every invocation runs with the workspace root as CWD, no stdin, and
stdout/stderr captured (never inherited).  Output is bounded; in debug mode
it is also mirrored to the log.  A non-zero exit is translated into the
matching ``ToolError`` subclass carrying the captured output.  Nothing is
retried.

The blocking ``subprocess.run`` call executes on an anyio worker thread so one
slow invocation never stalls other jobs.  The thread is not abandoned on
cancellation: a job whose caller went away still waits for its invocation to
finish before the workspace is cleaned up.
"""

from __future__ import annotations

import shlex
import subprocess
import time
from collections.abc import Sequence
from functools import partial
from pathlib import Path

import anyio
from anyio import to_thread
from loguru import logger

from sdkforge.build_runtime.errors import (
    ToolError,
    ToolInstallError,
    ToolInvocationError,
    ToolUnavailableError,
)
from sdkforge.build_runtime.models.enums import CommandKind
from sdkforge.build_runtime.models.job import ToolResult
from sdkforge.build_runtime.settings import SdkforgeSettings

_FAILURES: dict[CommandKind, tuple[type[ToolError], str]] = {
    CommandKind.ENSURE_AVAILABLE: (ToolUnavailableError, "Tool runtime is not available on the server"),
    CommandKind.INSTALL: (ToolInstallError, "Failed to install the generator CLI"),
    CommandKind.CHECK: (ToolInvocationError, "Specification check failed"),
    CommandKind.GENERATE: (ToolInvocationError, "SDK generation failed"),
}


def bound_output(text: str, limit: int) -> str:
    """Keep at most ``limit`` trailing characters of ``text``."""
    if limit <= 0 or len(text) <= limit:
        return text
    dropped = len(text) - limit
    return f"[... {dropped} characters truncated ...]\n{text[-limit:]}"


class ToolInvoker:
    """Build and run tool command lines for a job's workspace."""

    def __init__(
        self,
        *,
        runtime_command: str = "npm",
        tool_command: str = "fern",
        tool_package: str = "fern-api",
        tool_version: str = "0.61.18",
        install_enabled: bool = True,
        timeout: float | None = None,
        output_limit: int = 1_000_000,
        debug: bool = False,
    ) -> None:
        self.runtime_command = shlex.split(runtime_command)
        self.tool_command = shlex.split(tool_command)
        self.tool_package = tool_package
        self.tool_version = tool_version
        self.install_enabled = install_enabled
        self.timeout = timeout
        self.output_limit = output_limit
        self.debug = debug

        self._install_lock: anyio.Lock | None = None
        self._installed: set[str] = set()

    @classmethod
    def from_settings(cls, settings: SdkforgeSettings) -> ToolInvoker:
        return cls(
            runtime_command=settings.tool_runtime_command,
            tool_command=settings.tool_command,
            tool_package=settings.tool_package,
            tool_version=settings.tool_version,
            install_enabled=settings.install_tool,
            timeout=settings.tool_timeout,
            output_limit=settings.output_limit,
            debug=settings.debug,
        )

    # -- Command lines ---------------------------------------------------------

    def build_command(self, kind: CommandKind, extra_args: Sequence[str] = ()) -> list[str]:
        if kind == CommandKind.ENSURE_AVAILABLE:
            base = [*self.runtime_command, "--version"]
        elif kind == CommandKind.INSTALL:
            base = [*self.runtime_command, "install", "-g", f"{self.tool_package}@{self.tool_version}"]
        elif kind == CommandKind.CHECK:
            base = [*self.tool_command, "check"]
        else:
            base = [*self.tool_command, "generate", "--local"]
        return [*base, *extra_args]

    # -- Invocation ------------------------------------------------------------

    async def invoke(
        self,
        working_dir: Path,
        kind: CommandKind,
        extra_args: Sequence[str] = (),
    ) -> ToolResult:
        """Run one command to completion.  Raises the mapped ``ToolError`` on failure."""
        command = self.build_command(kind, extra_args)
        logger.debug("Running {} in {}: {}", kind, working_dir, shlex.join(command))

        result = await to_thread.run_sync(partial(self._run, kind, command, Path(working_dir)))

        if self.debug:
            self._mirror(result)
        if not result.ok:
            error_cls, message = _FAILURES[kind]
            status = "timed out" if result.exit_code is None else f"exit status {result.exit_code}"
            logger.error("{} ({}): {}", message, status, shlex.join(command))
            logger.error("Stderr: {}", result.stderr)
            logger.error("Stdout: {}", result.stdout)
            raise error_cls(f"{message}: {shlex.join(command)} ({status})", result)
        return result

    async def ensure_available(self, working_dir: Path) -> ToolResult:
        return await self.invoke(working_dir, CommandKind.ENSURE_AVAILABLE)

    async def install(self, working_dir: Path) -> ToolResult | None:
        """Install the pinned tool version once per process.

        Concurrent jobs serialise on a lock; whoever comes second finds the
        version already installed and skips.  Returns ``None`` when nothing
        was run.
        """
        if not self.install_enabled:
            return None
        if self._install_lock is None:
            self._install_lock = anyio.Lock()
        async with self._install_lock:
            if self.tool_version in self._installed:
                return None
            logger.info("Installing {}@{}...", self.tool_package, self.tool_version)
            result = await self.invoke(working_dir, CommandKind.INSTALL)
            self._installed.add(self.tool_version)
            logger.info("{}@{} installed ({}ms)", self.tool_package, self.tool_version, result.duration_ms)
            return result

    async def check(self, working_dir: Path) -> ToolResult:
        return await self.invoke(working_dir, CommandKind.CHECK)

    async def generate(self, working_dir: Path, group: str | None = None) -> ToolResult:
        extra = ["--group", group] if group else []
        return await self.invoke(working_dir, CommandKind.GENERATE, extra)

    # -- Sync helpers (run in thread pool) -------------------------------------

    def _run(self, kind: CommandKind, command: list[str], cwd: Path) -> ToolResult:
        start = time.monotonic()
        try:
            completed = subprocess.run(  # noqa: S603
                command,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            result = ToolResult(kind=kind, command=command, exit_code=127, stderr=str(exc))
            msg = f"Command not found: {command[0]}"
            raise ToolUnavailableError(msg, result) from exc
        except OSError as exc:
            # Present but not startable: no exec bit, bad interpreter line, ...
            result = ToolResult(kind=kind, command=command, exit_code=126, stderr=str(exc))
            msg = f"Cannot execute {command[0]}: {exc.strerror or exc}"
            raise ToolUnavailableError(msg, result) from exc
        except subprocess.TimeoutExpired as exc:
            return ToolResult(
                kind=kind,
                command=command,
                exit_code=None,
                stdout=bound_output(_decode(exc.stdout), self.output_limit),
                stderr=bound_output(_decode(exc.stderr), self.output_limit),
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        return ToolResult(
            kind=kind,
            command=command,
            exit_code=completed.returncode,
            stdout=bound_output(completed.stdout or "", self.output_limit),
            stderr=bound_output(completed.stderr or "", self.output_limit),
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    @staticmethod
    def _mirror(result: ToolResult) -> None:
        for line in result.stdout.splitlines():
            logger.info("[{} stdout] {}", result.kind, line)
        for line in result.stderr.splitlines():
            logger.info("[{} stderr] {}", result.kind, line)


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
