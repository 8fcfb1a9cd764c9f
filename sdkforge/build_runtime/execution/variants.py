"""Per-language generator variants.

Each supported target language maps to exactly one generator package, a
pinned generator version and an output subpath inside the workspace.  The
configuration keys each generator understands differ per language, so the
variant also knows how to spell the package name and the two toggles.

Unknown language identifiers select the TypeScript variant: a caller asking
for an unsupported language gets the default SDK rather than an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger

DEFAULT_LANGUAGE = "typescript"
OUTPUT_HOLDER = "generated"


@dataclass(frozen=True)
class GeneratorVariant:
    """Generator selection for one target language."""

    language: str
    generator: str
    version: str
    name_key: str = "name"
    name_format: str = "{package_name}"
    examples_key: str = "include-examples"
    tests_key: str = "include-tests"
    toggles_parent: str | None = None
    """Nest both toggles under this key instead of the config root."""

    @property
    def group(self) -> str:
        """Generator group name; ``generate`` is scoped to it."""
        return self.language

    @property
    def output_subpath(self) -> str:
        """Output directory relative to the workspace root."""
        return f"{OUTPUT_HOLDER}/{self.language}"

    def render_config(
        self,
        package_name: str,
        *,
        include_examples: bool = True,
        include_tests: bool = False,
        extra: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Build the generator ``config`` mapping.

        ``extra`` holds caller-supplied options passed through to the
        generator; the computed keys take precedence over it.
        """
        config: dict[str, Any] = dict(extra or {})
        config[self.name_key] = self.name_format.format(package_name=package_name)

        toggles = {self.examples_key: include_examples, self.tests_key: include_tests}
        if self.toggles_parent:
            nested = config.get(self.toggles_parent)
            nested = dict(nested) if isinstance(nested, dict) else {}
            nested.update(toggles)
            config[self.toggles_parent] = nested
        else:
            config.update(toggles)
        return config


VARIANTS: dict[str, GeneratorVariant] = {
    "typescript": GeneratorVariant(
        language="typescript",
        generator="fernapi/fern-typescript-node-sdk",
        version="0.39.3",
        examples_key="includeExamples",
        tests_key="includeTests",
    ),
    "python": GeneratorVariant(
        language="python",
        generator="fernapi/fern-python-sdk",
        version="4.3.10",
        examples_key="include_examples",
        tests_key="include_tests",
    ),
    "java": GeneratorVariant(
        language="java",
        generator="fernapi/fern-java-sdk",
        version="2.8.1",
        examples_key="examples",
        tests_key="tests",
        toggles_parent="includes",
    ),
    "go": GeneratorVariant(
        language="go",
        generator="fernapi/fern-go-sdk",
        version="0.36.5",
        name_key="module-path",
        name_format="github.com/{package_name}/sdk",
    ),
    "ruby": GeneratorVariant(
        language="ruby",
        generator="fernapi/fern-ruby-sdk",
        version="0.8.2",
    ),
    "csharp": GeneratorVariant(
        language="csharp",
        generator="fernapi/fern-csharp-sdk",
        version="1.9.11",
    ),
}

SUPPORTED_LANGUAGES: tuple[str, ...] = tuple(VARIANTS)


def select_variant(target_language: str | None) -> GeneratorVariant:
    """Return the variant for ``target_language``, falling back to TypeScript."""
    key = (target_language or "").strip().lower()
    variant = VARIANTS.get(key)
    if variant is None:
        logger.info("Unsupported target language {!r}; using the {} generator", target_language, DEFAULT_LANGUAGE)
        return VARIANTS[DEFAULT_LANGUAGE]
    return variant
