import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter
from loguru import logger

from sdkforge.build_runtime.errors import JobError, ToolError, ValidationError
from sdkforge.build_runtime.execution.orchestrator import JobOrchestrator
from sdkforge.build_runtime.log import install_crash_handlers, install_loop_crash_handler, setup_logging
from sdkforge.build_runtime.models.api import ErrorResponse, HealthResponse, ToolOutput
from sdkforge.build_runtime.registry import JobRegistry, ShuttingDownError
from sdkforge.build_runtime.settings import SdkforgeSettings, get_settings

# ---------------------------------------------------------------------------
# Shared singletons initialised during lifespan
# ---------------------------------------------------------------------------
registry = JobRegistry()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level)
    install_crash_handlers(settings.crash_grace_seconds)
    install_loop_crash_handler(asyncio.get_running_loop(), settings.crash_grace_seconds)

    if settings.resolve_api_key() is None:
        logger.warning("No SDKFORGE_API_KEY set -- API key protection disabled")

    logger.info("SDK generator starting (host={}, port={})", settings.host, settings.port)
    logger.info("Debug mode: {}", "Enabled" if settings.debug else "Disabled")

    orchestrator = JobOrchestrator(settings, registry=registry)
    _app.state.settings = settings
    _app.state.orchestrator = orchestrator

    # -- Crash recovery --------------------------------------------------------
    # Workspaces are never persisted; anything left belongs to a dead process.
    swept = await orchestrator.workspaces.sweep_async()
    if swept > 0:
        logger.info("Startup recovery: removed {} stale workspaces", swept)
    logger.info(
        "Workspace root: {} (tool={}@{}, install={})",
        orchestrator.workspaces.root,
        settings.tool_package,
        settings.tool_version,
        settings.install_tool,
    )

    yield

    # -- Shutdown --------------------------------------------------------------
    logger.info("SDK generator shutting down (active_jobs={})", registry.active_count)

    # 1. Stop accepting new jobs.
    registry.begin_shutdown()

    # 2. Wait for active jobs; an invocation cannot be interrupted anyway.
    if registry.active_count > 0:
        timeout = settings.graceful_shutdown_timeout
        logger.info("Waiting for {} active jobs to finish (timeout={}s)...", registry.active_count, timeout)
        await registry.wait_until_drained(timeout=timeout)

    # 3. Whatever is still on disk has no owner any more.
    swept = await orchestrator.workspaces.sweep_async()
    if swept > 0:
        logger.warning("Removed {} workspaces left after drain", swept)


def cors_options(settings: SdkforgeSettings) -> dict[str, Any]:
    """Keyword arguments for ``CORSMiddleware``.

    Middleware cannot be added once the app has started, so this reads the
    settings when the module is imported (``SDKFORGE_CORS_ORIGINS``), not in
    ``lifespan``.
    """
    return {
        "allow_origins": settings.cors_origins,
        "allow_methods": ["*"],
        "allow_headers": ["*"],
    }


app = FastAPI(title="sdkforge SDK Generator", lifespan=lifespan)
app.add_middleware(CORSMiddleware, **cors_options(get_settings()))

# ---------------------------------------------------------------------------
# Error translation -- the execution layer never raises HTTP exceptions
# ---------------------------------------------------------------------------


def error_status(exc: JobError) -> int:
    """HTTP status for a job error: caller faults are 400, the rest 500."""
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_payload(exc: JobError) -> ErrorResponse:
    details = ToolOutput(stdout=exc.stdout, stderr=exc.stderr) if isinstance(exc, ToolError) else None
    return ErrorResponse(error=exc.message, details=details, diagnostics=exc.diagnostics)


@app.exception_handler(JobError)
async def handle_job_error(_request: Request, exc: JobError) -> JSONResponse:
    return JSONResponse(
        status_code=error_status(exc),
        content=error_payload(exc).model_dump(exclude_none=True),
    )


@app.exception_handler(ShuttingDownError)
async def handle_shutting_down(_request: Request, _exc: ShuttingDownError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=ErrorResponse(error="Server is shutting down").model_dump(exclude_none=True),
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
api = APIRouter()


@api.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse()


from sdkforge.build_runtime.routers.jobs import router as jobs_router  # noqa: E402

api.include_router(jobs_router)

app.include_router(api)
