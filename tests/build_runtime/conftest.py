"""Shared fixtures for build-runtime HTTP tests."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

from sdkforge.build_runtime.app import app
from sdkforge.build_runtime.execution.orchestrator import JobOrchestrator
from sdkforge.build_runtime.settings import SdkforgeSettings


@pytest.fixture
async def client(settings: SdkforgeSettings, orchestrator: JobOrchestrator) -> AsyncIterator[AsyncClient]:
    """Async HTTP client wired to the app with the test orchestrator.

    The app lifespan does NOT run under ``ASGITransport``, so state fields
    are pre-set here and reset afterwards.
    """
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.settings = None
    app.state.orchestrator = None
