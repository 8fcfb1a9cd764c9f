"""Build job endpoints.

Thin HTTP adapter -- parses multipart input and delegates to the job
orchestrator.  Job errors propagate to the handlers registered in ``app.py``.
"""

from __future__ import annotations

import json
from typing import Annotated, Any

import anyio
from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from sdkforge.build_runtime.deps import Orchestrator, Settings, require_api_key
from sdkforge.build_runtime.errors import ValidationError
from sdkforge.build_runtime.execution.orchestrator import ArchiveDelivery
from sdkforge.build_runtime.models.api import ValidationResponse
from sdkforge.build_runtime.models.enums import JobKind
from sdkforge.build_runtime.models.job import JobRequest

router = APIRouter(tags=["jobs"], dependencies=[Depends(require_api_key)])


class ArchiveResponse(StreamingResponse):
    """Streams an ``ArchiveDelivery`` and releases its workspace however the send ends.

    The body iterator may never be advanced (the client can vanish before
    ``http.response.start`` goes out), so the release cannot live only in
    ``iter_bytes``.
    """

    def __init__(self, delivery: ArchiveDelivery) -> None:
        super().__init__(
            delivery.iter_bytes(),
            media_type=delivery.media_type,
            headers={
                "Content-Disposition": f"attachment; filename={delivery.filename}",
                "Content-Length": str(delivery.size),
            },
        )
        self.delivery = delivery

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            with anyio.CancelScope(shield=True):
                await self.delivery.close()


async def read_spec_upload(upload: UploadFile | None, limit: int) -> bytes | None:
    """Read the uploaded spec, refusing anything larger than ``limit`` bytes."""
    if upload is None:
        return None
    try:
        data = await upload.read(limit + 1)
    finally:
        await upload.close()
    if len(data) > limit:
        msg = f"Spec file exceeds the {limit} byte limit"
        raise ValidationError(msg)
    return data


def parse_options(raw: str | None) -> dict[str, Any]:
    """Decode the ``config`` form field (a JSON object) into job options."""
    if raw is None or not raw.strip():
        return {}
    try:
        options = json.loads(raw)
    except json.JSONDecodeError as exc:
        msg = f"Invalid JSON in config: {exc}"
        raise ValidationError(msg) from None
    if not isinstance(options, dict):
        msg = "config must be a JSON object"
        raise ValidationError(msg)
    return options


@router.post("/check", response_model=ValidationResponse)
async def handle_check(
    orchestrator: Orchestrator,
    settings: Settings,
    spec: Annotated[UploadFile | None, File()] = None,
) -> ValidationResponse:
    """Validate an OpenAPI spec with the generator's ``check`` command."""
    payload = await read_spec_upload(spec, settings.max_spec_bytes)
    report = await orchestrator.validate(JobRequest(kind=JobKind.VALIDATE, spec=payload))
    return ValidationResponse.from_report(report)


@router.post("/generate", response_class=ArchiveResponse)
async def handle_generate(
    orchestrator: Orchestrator,
    settings: Settings,
    spec: Annotated[UploadFile | None, File()] = None,
    language: Annotated[str | None, Form()] = None,
    package_name: Annotated[str | None, Form(alias="packageName")] = None,
    config: Annotated[str | None, Form()] = None,
) -> ArchiveResponse:
    """Generate an SDK and stream it back as a zip archive."""
    payload = await read_spec_upload(spec, settings.max_spec_bytes)
    request = JobRequest(
        kind=JobKind.GENERATE,
        spec=payload,
        target_language=language,
        package_name=package_name,
        options=parse_options(config),
    )
    delivery = await orchestrator.generate(request)

    return ArchiveResponse(delivery)
