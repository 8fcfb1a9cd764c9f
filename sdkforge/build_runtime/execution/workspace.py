"""Ephemeral workspace directories.

Every job gets its own directory under a shared root::

    {tmp_root}/ws-{label}-{millis}-{seq}-{token}/

Uniqueness comes from the exclusive ``mkdir`` itself; the timestamp,
process-wide counter and random token make a collision practically
impossible, and a collision is retried rather than shared.  The root is the
only resource concurrent jobs have in common.

The manager is a pure directory-lifecycle utility: it does not know which job
owns a path.  ``release`` is idempotent so that every termination path of a
job may call it without coordination.

Uses ``anyio.to_thread.run_sync`` for non-blocking filesystem work, like the
rest of the runtime.
"""

from __future__ import annotations

import itertools
import os
import secrets
import shutil
import time
from functools import partial
from pathlib import Path

from anyio import to_thread
from loguru import logger

from sdkforge.build_runtime.errors import ResourceError

WORKSPACE_PREFIX = "ws-"
"""Name prefix of every directory the manager creates (and may sweep)."""

_MAX_ALLOCATE_ATTEMPTS = 5


class WorkspaceManager:
    """Allocate and destroy uniquely named job directories under ``root``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).absolute()
        self._counter = itertools.count(1)

    # -- Allocation ------------------------------------------------------------

    def allocate(self, label: str = "job") -> Path:
        """Create a fresh, empty workspace directory and return its path.

        Raises ``ResourceError`` if the root cannot be created or written to.
        """
        self._ensure_root()
        for _ in range(_MAX_ALLOCATE_ATTEMPTS):
            path = self.root / self._next_name(label)
            try:
                path.mkdir()
            except FileExistsError:
                continue
            except OSError as exc:
                msg = f"Cannot create workspace under {self.root}: {exc}"
                raise ResourceError(msg) from exc
            logger.debug("Workspace allocated: {}", path)
            return path

        msg = f"Could not allocate a unique workspace under {self.root}"
        raise ResourceError(msg)

    def _next_name(self, label: str) -> str:
        millis = time.time_ns() // 1_000_000
        return f"{WORKSPACE_PREFIX}{label}-{millis}-{next(self._counter)}-{secrets.token_hex(4)}"

    def _ensure_root(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Workspace root {self.root} cannot be created: {exc}"
            raise ResourceError(msg) from exc
        if not os.access(self.root, os.W_OK | os.X_OK):
            msg = f"Workspace root {self.root} is not writable"
            raise ResourceError(msg)

    # -- Removal ---------------------------------------------------------------

    def release(self, path: str | Path) -> bool:
        """Remove a workspace and everything inside it.

        Returns ``False`` (and does nothing) when the path is already gone.
        Raises ``ResourceError`` for any other removal failure.
        """
        path = Path(path)
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            msg = f"Failed to remove workspace {path}: {exc}"
            raise ResourceError(msg) from exc
        logger.debug("Workspace released: {}", path)
        return True

    def sweep(self) -> int:
        """Remove every workspace left under the root.

        Used at startup to clear directories orphaned by a crashed process and
        after the shutdown drain.  Returns the number of directories removed.
        """
        if not self.root.is_dir():
            return 0
        removed = 0
        for entry in self.root.iterdir():
            if entry.is_dir() and entry.name.startswith(WORKSPACE_PREFIX) and self.release(entry):
                removed += 1
        return removed

    # -- Async wrappers --------------------------------------------------------

    async def allocate_async(self, label: str = "job") -> Path:
        return await to_thread.run_sync(partial(self.allocate, label))

    async def release_async(self, path: str | Path) -> bool:
        return await to_thread.run_sync(partial(self.release, path))

    async def sweep_async(self) -> int:
        return await to_thread.run_sync(self.sweep)
