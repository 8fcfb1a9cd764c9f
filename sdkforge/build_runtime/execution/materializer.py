"""Project materialization: job parameters -> on-disk tool project.

The external tool expects a fixed layout relative to the workspace root::

    {workspace}/
        fern/
            fern.config.json        project identity (static)
            generators.yml          generator configuration
            openapi/
                openapi.yaml        caller-supplied API description
        generated/
            {language}/             written by the tool on ``generate``

The tool does not report a malformed layout -- it silently produces nothing
-- so the structure is created exhaustively and ``ProjectLayout.verify``
checks it again before the tool runs.

``validate`` jobs get a stub ``generators.yml`` with no groups: ``check``
only needs a well-formed project, not a generator selection.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from sdkforge.build_runtime.errors import ResourceError, ValidationError
from sdkforge.build_runtime.execution.variants import OUTPUT_HOLDER, GeneratorVariant, select_variant
from sdkforge.build_runtime.models.enums import JobKind

PROJECT_DIR = "fern"
SPEC_DIR = "openapi"
SPEC_FILENAME = "openapi.yaml"
IDENTITY_FILENAME = "fern.config.json"
GENERATORS_FILENAME = "generators.yml"

DEFAULT_ORGANIZATION = "user"

_EXAMPLES_KEYS = ("includeExamples", "include_examples", "include-examples")
_TESTS_KEYS = ("includeTests", "include_tests", "include-tests")
_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off"})

_PACKAGE_NAME_RE = re.compile(r"^[^\s\x00-\x1f\x7f]{1,214}$")


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProjectLayout:
    """Resolved paths of a materialized project."""

    root: Path
    variant: GeneratorVariant | None = None

    @property
    def project_dir(self) -> Path:
        return self.root / PROJECT_DIR

    @property
    def spec_dir(self) -> Path:
        return self.project_dir / SPEC_DIR

    @property
    def spec_path(self) -> Path:
        return self.spec_dir / SPEC_FILENAME

    @property
    def identity_path(self) -> Path:
        return self.project_dir / IDENTITY_FILENAME

    @property
    def generators_path(self) -> Path:
        return self.project_dir / GENERATORS_FILENAME

    @property
    def output_root(self) -> Path:
        return self.root / OUTPUT_HOLDER

    @property
    def output_subdir(self) -> str | None:
        """Output directory relative to ``root``; ``None`` for validate jobs."""
        return self.variant.output_subpath if self.variant else None

    def required_paths(self) -> list[Path]:
        """Every path the external tool relies on, parents first."""
        return [
            self.project_dir,
            self.spec_dir,
            self.output_root,
            self.spec_path,
            self.identity_path,
            self.generators_path,
        ]

    def verify(self) -> None:
        """Raise ``ResourceError`` if any part of the layout is missing."""
        missing = [str(p.relative_to(self.root)) for p in self.required_paths() if not p.exists()]
        if missing:
            msg = f"Project layout incomplete, missing: {', '.join(missing)}"
            raise ResourceError(msg)


# ---------------------------------------------------------------------------
# Input checks
# ---------------------------------------------------------------------------


def check_inputs(
    spec: bytes | None,
    kind: JobKind,
    target_language: str | None,
    package_name: str | None,
    options: dict[str, Any] | None = None,
) -> None:
    """Reject missing or malformed caller input.  Touches nothing on disk."""
    if not spec:
        msg = "No OpenAPI spec file provided"
        raise ValidationError(msg)
    if kind != JobKind.GENERATE:
        return
    if not target_language or not target_language.strip():
        msg = "Language parameter is required"
        raise ValidationError(msg)
    if not package_name or not package_name.strip():
        msg = "Package name is required"
        raise ValidationError(msg)
    if not _PACKAGE_NAME_RE.match(package_name.strip()):
        msg = f"Invalid package name: {package_name!r}"
        raise ValidationError(msg)
    resolve_toggles(options)


def _coerce_toggle(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    msg = f"Option {key!r} must be a boolean, got {value!r}"
    raise ValidationError(msg)


def resolve_toggles(options: dict[str, Any] | None) -> tuple[bool, bool, dict[str, Any]]:
    """Split options into ``(include_examples, include_tests, passthrough)``.

    ``include_examples`` defaults to ``True`` and ``include_tests`` to
    ``False``; an explicit ``False`` is always honoured.
    """
    remaining = dict(options or {})
    include_examples = True
    include_tests = False
    for key in _EXAMPLES_KEYS:
        if key in remaining:
            include_examples = _coerce_toggle(key, remaining.pop(key))
    for key in _TESTS_KEYS:
        if key in remaining:
            include_tests = _coerce_toggle(key, remaining.pop(key))
    return include_examples, include_tests, remaining


def build_generators_document(
    variant: GeneratorVariant,
    package_name: str,
    options: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the ``generators.yml`` document for a generate job."""
    include_examples, include_tests, extra = resolve_toggles(options)
    return {
        "default-group": variant.group,
        "groups": {
            variant.group: {
                "generators": [
                    {
                        "name": variant.generator,
                        "version": variant.version,
                        "output": {
                            "location": "local-file-system",
                            "path": f"../{variant.output_subpath}",
                        },
                        "config": variant.render_config(
                            package_name,
                            include_examples=include_examples,
                            include_tests=include_tests,
                            extra=extra,
                        ),
                    }
                ]
            }
        },
    }


STUB_GENERATORS_DOCUMENT: dict[str, Any] = {"groups": {}}


# ---------------------------------------------------------------------------
# Materializer
# ---------------------------------------------------------------------------


class ProjectMaterializer:
    """Write the tool project for one job into its workspace."""

    def __init__(self, tool_version: str, organization: str = DEFAULT_ORGANIZATION) -> None:
        self.tool_version = tool_version
        self.organization = organization

    def materialize(
        self,
        workspace: Path,
        spec: bytes | None,
        kind: JobKind,
        target_language: str | None = None,
        package_name: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> ProjectLayout:
        """Create the project skeleton, spec file and configuration artifacts."""
        check_inputs(spec, kind, target_language, package_name, options)

        if kind == JobKind.GENERATE:
            variant = select_variant(target_language)
            document = build_generators_document(variant, package_name.strip(), options)  # type: ignore[union-attr]
        else:
            variant = None
            document = STUB_GENERATORS_DOCUMENT

        layout = ProjectLayout(root=Path(workspace), variant=variant)
        try:
            layout.spec_dir.mkdir(parents=True, exist_ok=True)
            layout.output_root.mkdir(parents=True, exist_ok=True)
            layout.spec_path.write_bytes(spec)  # type: ignore[arg-type]
            layout.identity_path.write_text(
                json.dumps({"organization": self.organization, "version": self.tool_version}, indent=2),
                encoding="utf-8",
            )
            layout.generators_path.write_text(
                yaml.safe_dump(document, sort_keys=False, default_flow_style=False),
                encoding="utf-8",
            )
        except OSError as exc:
            msg = f"Project structure creation failed: {exc}"
            raise ResourceError(msg) from exc

        return layout
