"""FastAPI dependency injection for settings, the orchestrator and auth.

Usage in route handlers::

    @router.post("/check", dependencies=[Depends(require_api_key)])
    async def check(orchestrator: Orchestrator, settings: Settings) -> ...:
        ...

The orchestrator dependency raises HTTP 503 if the app lifespan has not
initialised it.
"""

from __future__ import annotations

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from sdkforge.build_runtime.execution.orchestrator import JobOrchestrator
from sdkforge.build_runtime.settings import SdkforgeSettings, get_settings


def get_app_settings(request: Request) -> SdkforgeSettings:
    """Settings the app was started with (falls back to the environment)."""
    settings: SdkforgeSettings | None = getattr(request.app.state, "settings", None)
    return settings if settings is not None else get_settings()


def get_orchestrator(request: Request) -> JobOrchestrator:
    orchestrator: JobOrchestrator | None = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job orchestrator not initialised.",
        )
    return orchestrator


async def require_api_key(
    settings: Annotated[SdkforgeSettings, Depends(get_app_settings)],
    x_api_key: Annotated[str | None, Header()] = None,
) -> None:
    """Compare the ``x-api-key`` header against the configured key.

    No-op when no key is configured (a warning is logged at startup).
    """
    expected = settings.resolve_api_key()
    if expected is None:
        return
    if not x_api_key or not secrets.compare_digest(x_api_key.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized - Invalid API Key",
        )


# -- Annotated type aliases for concise route signatures ---------------------

Settings = Annotated[SdkforgeSettings, Depends(get_app_settings)]
"""Annotated dependency: service settings."""

Orchestrator = Annotated[JobOrchestrator, Depends(get_orchestrator)]
"""Annotated dependency: shared job orchestrator."""
