"""Step and artifact classification.

Caching requirements apply to author-written transform/collect steps, not to
the terminal sinks that only register output text. Under the strict policy,
host-owned input steps (which always miss on a fresh host snapshot) are
exempt as well. Matching is a case-insensitive substring check.
"""

from typing import Iterable, Optional

from cacheproof.codes import ClassifierPolicy
from cacheproof.config import (
    DEFAULT_HOST_STEP_MARKERS,
    DEFAULT_INFRASTRUCTURE_ARTIFACT_MARKERS,
    DEFAULT_SINK_STEP_MARKERS,
    VerifierSettings,
)


def _matches_any(name: Optional[str], markers: Iterable[str]) -> bool:
    if not name:
        return False
    lowered = name.lower()
    return any(marker.lower() in lowered for marker in markers)


def is_sink_step(step_name: Optional[str], markers: Iterable[str] = DEFAULT_SINK_STEP_MARKERS) -> bool:
    """True if the step is an output-registration sink."""
    return _matches_any(step_name, markers)


def is_host_step(step_name: Optional[str], markers: Iterable[str] = DEFAULT_HOST_STEP_MARKERS) -> bool:
    """True if the step is owned by the host platform rather than the pipeline author."""
    return _matches_any(step_name, markers)


def is_infrastructure_step(
    step_name: Optional[str],
    settings: Optional[VerifierSettings] = None,
) -> bool:
    """True if the step is exempt from caching requirements.

    Absent or empty names are never infrastructure.
    """
    if settings is None:
        return is_sink_step(step_name)
    if is_sink_step(step_name, settings.sink_step_markers):
        return True
    if settings.classifier_policy == ClassifierPolicy.STRICT:
        return is_host_step(step_name, settings.host_step_markers)
    return False


def is_infrastructure_artifact(
    artifact_name: Optional[str],
    markers: Iterable[str] = DEFAULT_INFRASTRUCTURE_ARTIFACT_MARKERS,
) -> bool:
    """True if the artifact is scaffolding (embedded attributes, polyfills)."""
    return _matches_any(artifact_name, markers)
