import click


@click.group()
def main() -> None:
    """sdkforge - Turn OpenAPI specs into packaged client SDKs."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from SDKFORGE_HOST or 0.0.0.0).")
@click.option("--port", default=None, type=int, help="Bind port (default: from SDKFORGE_PORT or 3000).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def server(host: str | None, port: int | None, reload: bool) -> None:
    """Start the SDK generator HTTP server."""
    import uvicorn

    from sdkforge.build_runtime.settings import SdkforgeSettings

    settings = SdkforgeSettings()

    uvicorn.run(
        "sdkforge.build_runtime.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
        # In-flight jobs cannot be interrupted mid-invocation; give them the
        # drain timeout plus a buffer for workspace cleanup.
        timeout_graceful_shutdown=settings.graceful_shutdown_timeout + 30,
    )


# ---------------------------------------------------------------------------
# Local jobs (same orchestrator, no HTTP)
# ---------------------------------------------------------------------------


def _orchestrator():
    from sdkforge.build_runtime.execution.orchestrator import JobOrchestrator
    from sdkforge.build_runtime.log import setup_logging
    from sdkforge.build_runtime.settings import SdkforgeSettings

    settings = SdkforgeSettings()
    setup_logging(settings.log_level)
    return JobOrchestrator(settings)


@main.command()
@click.argument("spec", type=click.Path(exists=True, dir_okay=False, readable=True))
def check(spec: str) -> None:
    """Validate SPEC with the generator's check command."""
    import asyncio
    from pathlib import Path

    from sdkforge.build_runtime.errors import JobError
    from sdkforge.build_runtime.models.enums import JobKind
    from sdkforge.build_runtime.models.job import JobRequest

    orchestrator = _orchestrator()
    request = JobRequest(kind=JobKind.VALIDATE, spec=Path(spec).read_bytes())
    try:
        report = asyncio.run(orchestrator.validate(request))
    except JobError as exc:
        raise click.ClickException(exc.message) from exc

    if report.valid:
        click.echo("OpenAPI specification is valid")
        return
    click.echo("OpenAPI specification has validation errors:", err=True)
    for line in report.diagnostics:
        click.echo(f"  {line}", err=True)
    raise SystemExit(1)


@main.command()
@click.argument("spec", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option("--language", "-l", required=True, help="Target language (unknown values fall back to typescript).")
@click.option("--package-name", "-p", required=True, help="Package name of the generated SDK.")
@click.option("--config", "config_json", default=None, help="Generator options as a JSON object.")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Archive path (default: <package>-<language>-sdk.zip in the CWD).",
)
def generate(spec: str, language: str, package_name: str, config_json: str | None, output: str | None) -> None:
    """Generate an SDK from SPEC and write it as a zip archive."""
    import asyncio
    from pathlib import Path

    from sdkforge.build_runtime.errors import JobError
    from sdkforge.build_runtime.models.enums import JobKind
    from sdkforge.build_runtime.models.job import JobRequest
    from sdkforge.build_runtime.routers.jobs import parse_options

    orchestrator = _orchestrator()

    async def _run() -> Path:
        request = JobRequest(
            kind=JobKind.GENERATE,
            spec=Path(spec).read_bytes(),
            target_language=language,
            package_name=package_name,
            options=parse_options(config_json),
        )
        delivery = await orchestrator.generate(request)
        target = Path(output or delivery.filename)
        try:
            with target.open("wb") as f:
                async for chunk in delivery.iter_bytes():
                    f.write(chunk)
        finally:
            await delivery.close()
        return target

    try:
        target = asyncio.run(_run())
    except JobError as exc:
        for line in exc.diagnostics:
            click.echo(f"  {line}", err=True)
        raise click.ClickException(exc.message) from exc
    click.echo(f"SDK written to {target}")


if __name__ == "__main__":
    main()
