"""Execution pipeline for the build runtime.

This package contains the core job components:

- **workspace**: Workspace lifecycle (allocate, release, sweep under the tmp root)
- **variants**: Generator selection (target language -> generator package/version/output path)
- **materializer**: Project layout (spec + fern.config.json + generators.yml)
- **invoker**: External tool subprocesses (ensure-available, install, check, generate)
- **packager**: Output verification and zip packaging
- **orchestrator**: Job state machine (receive -> prepare -> invoke -> finish -> clean)
"""
