"""Typed verifier configuration loaded via pydantic-settings.

Settings are an explicit value passed into each operation; nothing here is
read implicitly by the kernel. Environment variables use the ``CACHEPROOF_``
prefix, e.g. ``CACHEPROOF_MAX_DEPTH=50`` or ``CACHEPROOF_JSON_REPORTING=1``.
"""

from __future__ import annotations

from typing import Tuple

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cacheproof.codes import ClassifierPolicy


DEFAULT_SINK_STEP_MARKERS: Tuple[str, ...] = (
    "RegisterSourceOutput",
    "RegisterImplementationSourceOutput",
    "RegisterPostInitializationOutput",
    "SourceOutput",
)

DEFAULT_HOST_STEP_MARKERS: Tuple[str, ...] = (
    "Compilation",
    "ParseOptions",
    "AdditionalTexts",
    "AnalyzerConfigOptions",
    "MetadataReferences",
    "HostInput",
)

DEFAULT_INFRASTRUCTURE_ARTIFACT_MARKERS: Tuple[str, ...] = (
    "Attribute.g.",
    "Attributes.g.",
    "EmbeddedAttribute",
    "Polyfill",
)


class VerifierSettings(BaseSettings):
    """Tunable limits and classification markers for one comparison."""

    model_config = SettingsConfigDict(
        env_prefix="CACHEPROOF_",
        extra="ignore",
        frozen=True,
    )

    # === Scanner bounds ===
    max_depth: int = 100
    max_violations: int = 256

    # === Step classification ===
    classifier_policy: ClassifierPolicy = ClassifierPolicy.SINK_ONLY
    sink_step_markers: Tuple[str, ...] = DEFAULT_SINK_STEP_MARKERS
    host_step_markers: Tuple[str, ...] = DEFAULT_HOST_STEP_MARKERS
    infrastructure_artifact_markers: Tuple[str, ...] = DEFAULT_INFRASTRUCTURE_ARTIFACT_MARKERS

    # === Verdict / reporting ===
    require_output: bool = False
    json_reporting: bool = False

    @field_validator("max_depth", "max_violations")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Bounds must leave room for at least one node / violation."""
        if v < 1:
            raise ValueError(f"Scanner bound must be >= 1, got {v}")
        return v

    @field_validator("sink_step_markers", "host_step_markers", "infrastructure_artifact_markers")
    @classmethod
    def validate_markers(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        """Drop blank markers; an empty marker would match every name."""
        return tuple(m for m in v if m and m.strip())


def default_settings() -> VerifierSettings:
    """Build settings from the environment (fresh instance per call)."""
    return VerifierSettings()
