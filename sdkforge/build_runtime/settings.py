"""Service configuration loaded from SDKFORGE_* environment variables."""

from __future__ import annotations

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SdkforgeSettings(BaseSettings):
    """sdkforge build service settings.

    All fields are read from environment variables with the ``SDKFORGE_`` prefix.
    For example, ``SDKFORGE_LOG_LEVEL=DEBUG`` maps to ``log_level``.

    The settings object is passed explicitly into the job orchestrator at
    construction -- the execution layer never reads the environment itself.
    """

    model_config = SettingsConfigDict(
        env_prefix="SDKFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"
    debug: bool = False
    """Mirror captured external-tool output to the service log."""

    # -- Workspaces ------------------------------------------------------------
    tmp_root: str = "./tmp"
    """Writable root under which every job workspace is created and destroyed."""

    max_spec_bytes: int = 50 * 1024 * 1024

    # -- External tool ---------------------------------------------------------
    tool_runtime_command: str = "npm"
    """Command line of the runtime that hosts the generator (split with shlex)."""

    tool_command: str = "fern"
    """Command line of the generator CLI itself (split with shlex)."""

    tool_package: str = "fern-api"
    tool_version: str = "0.61.18"

    install_tool: bool = True
    """Install the pinned tool version before invoking it.

    Disable for images where the CLI is baked in at build time.
    """

    tool_timeout: float | None = 900.0
    """Seconds before a tool invocation is killed.  ``None`` waits forever."""

    output_limit: int = 1_000_000
    """Maximum characters kept per captured stream (the tail is kept)."""

    # -- Auth ------------------------------------------------------------------
    api_key: SecretStr | None = None
    """Expected ``x-api-key`` header.  Auth is disabled when unset."""

    # -- Server ----------------------------------------------------------------
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000
    cors_origins: list[str] = ["*"]
    graceful_shutdown_timeout: int = 600
    """Seconds to wait for in-flight jobs during shutdown.

    A job cannot be interrupted mid-invocation, so this should cover the
    slowest expected ``generate`` run.
    """

    crash_grace_seconds: float = 1.0
    """Delay between logging a fatal fault and terminating the process."""

    # -- Helpers ---------------------------------------------------------------

    def resolve_api_key(self) -> str | None:
        """Return the configured API key as plain text, if any."""
        if self.api_key is None:
            return None
        return self.api_key.get_secret_value() or None


def get_settings() -> SdkforgeSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``_get_settings_cached.cache_clear()`` in tests to
    force a re-read after overriding env vars.
    """
    return _get_settings_cached()


def _get_settings_cached() -> SdkforgeSettings:
    """Inner function wrapped by lru_cache (allows type-safe cache_clear)."""
    return SdkforgeSettings()


# Apply lru_cache at runtime so the function is only called once.
from functools import lru_cache  # noqa: E402

_get_settings_cached = lru_cache(maxsize=1)(_get_settings_cached)
