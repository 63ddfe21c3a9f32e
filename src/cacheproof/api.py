"""Public API for cacheproof.

High-level functions that return complete, structured results.
Callers should use these instead of importing from _internal.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from cacheproof.config import VerifierSettings
from cacheproof.contracts import FailurePayload
from cacheproof.kernel.identity import IdentityCacheResult, MaterializedOutput
from cacheproof.kernel.report import CachingReport, TrackingUnavailableError, build_caching_report
from cacheproof.kernel.scanner import scan_run
from cacheproof.kernel.trace import PipelineRun
from cacheproof._internal.formatting import build_failure_payload, render_failure_text

logger = logging.getLogger(__name__)


class CachingVerification(BaseModel):
    """Stable result model for a caching verification."""
    ok: bool
    pipeline: str
    checked_steps: List[str] = Field(default_factory=list)  # Steps held to caching requirements, sorted
    reasons: List[str] = Field(default_factory=list)  # Empty when ok
    report: FailurePayload
    failure_text: Optional[str] = None  # Only set when not ok


def _summarize(forbidden_count: int, failed_count: int, produced_output: bool) -> List[str]:
    reasons = []
    if forbidden_count > 0:
        reasons.append("Forbidden Types Detected")
    if failed_count > 0:
        reasons.append(f"Caching Failures ({failed_count} steps)")
    if not produced_output:
        reasons.append("No Meaningful Output")
    return reasons


def verify_caching(
    first_run: PipelineRun,
    second_run: PipelineRun,
    pipeline_name: str,
    required_steps: Optional[Sequence[str]] = None,
    settings: Optional[VerifierSettings] = None,
    forbidden_types: Optional[Iterable[type]] = None,
) -> CachingVerification:
    """Verify that a pipeline's second run reused its first run's outputs.

    Args:
        first_run: Run over the original input; its outputs are scanned.
        second_run: Run over the same (or minimally edited) input.
        pipeline_name: Name used in reports.
        required_steps: Steps to hold to caching requirements. None or empty
            checks forbidden values only, across every step; explicit names
            may include infrastructure steps and narrow the forbidden-value
            check to those steps.
        settings: Verifier settings; defaults to ``VerifierSettings()``.
        forbidden_types: Override the forbidden type set.

    Returns:
        CachingVerification with ``ok`` and, on failure, reasons and text.

    Raises:
        ValueError: If either run is None.
        TrackingUnavailableError: If neither run tracked any step.
        MissingStepError: If a required step is absent from both runs.
    """
    if settings is None:
        settings = VerifierSettings()

    report = build_caching_report(
        first_run, second_run, pipeline_name, settings=settings, forbidden_types=forbidden_types
    )
    if not report.has_tracked_steps:
        raise TrackingUnavailableError(pipeline_name)

    # Caching is only enforced for an explicit allowlist
    selected = report.select_steps(required_steps) if required_steps else []
    failed = [step for step in selected if not step.is_cached_successfully]
    relevant_violations = report.violations_for(required_steps or None)
    output_ok = report.produced_meaningful_output or not settings.require_output

    ok = not relevant_violations and not failed and output_ok
    reasons: List[str] = []
    failure_text = None
    if not ok:
        reasons = _summarize(len(relevant_violations), len(failed), report.produced_meaningful_output)
        failure_text = render_failure_text(
            report,
            failed,
            required_steps=required_steps,
            include_json=settings.json_reporting,
            violations=relevant_violations,
        )

    logger.debug(
        "verify_caching(%s): ok=%s checked=%d failed=%d violations=%d",
        pipeline_name, ok, len(selected), len(failed), len(relevant_violations),
    )
    return CachingVerification(
        ok=ok,
        pipeline=pipeline_name,
        checked_steps=sorted(step.step_name for step in selected),
        reasons=reasons,
        report=build_failure_payload(report, failed, violations=relevant_violations),
        failure_text=failure_text,
    )


def _as_output(value: Union[MaterializedOutput, PipelineRun]) -> MaterializedOutput:
    if isinstance(value, PipelineRun):
        return MaterializedOutput.from_run(value)
    return value


def check_identity(
    first: Union[MaterializedOutput, PipelineRun],
    second: Union[MaterializedOutput, PipelineRun],
    run_result: Optional[PipelineRun] = None,
    generated_names: Optional[Iterable[str]] = None,
) -> IdentityCacheResult:
    """Compare the generated artifacts of two outputs by object identity.

    Runs are accepted directly and read through their artifacts. Returns the
    result without asserting; call ``validate()`` or the ``assert_*`` methods.
    """
    return IdentityCacheResult(
        _as_output(first),
        _as_output(second),
        generated_names=generated_names,
        run_result=run_result,
    )


__all__ = [
    "CachingReport",
    "CachingVerification",
    "IdentityCacheResult",
    "MaterializedOutput",
    "build_caching_report",
    "check_identity",
    "scan_run",
    "verify_caching",
]
