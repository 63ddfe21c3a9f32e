"""Tests for the public verification API."""

import io

import pytest

from cacheproof.api import CachingVerification, check_identity, verify_caching
from cacheproof.codes import ReuseReason
from cacheproof.config import VerifierSettings
from cacheproof.kernel.identity import IdentityCacheResult
from cacheproof.kernel.report import MissingStepError, TrackingUnavailableError
from cacheproof.kernel.trace import Artifact, PipelineRun, StepExecution, StepOutput


def _run(steps, artifacts=(Artifact("Model.g.cs", "class Model {}"),)):
    return PipelineRun.from_mapping(
        {
            name: [StepExecution(outputs=[StepOutput(v, r) for v, r in outputs])]
            for name, outputs in steps.items()
        },
        artifacts=artifacts,
    )


def test_cached_pipeline_is_ok():
    first = _run({"Transform": [("m", ReuseReason.NEW)], "RegisterSourceOutput": [("s", ReuseReason.NEW)]})
    second = _run({"Transform": [("m", ReuseReason.CACHED)], "RegisterSourceOutput": [("s", ReuseReason.CACHED)]})

    result = verify_caching(first, second, "ModelGenerator")

    assert isinstance(result, CachingVerification)
    assert result.ok is True
    assert result.reasons == []
    assert result.failure_text is None
    assert result.checked_steps == []
    assert result.report.produced_output is True


def test_caching_only_enforced_for_explicit_steps():
    """Without an allowlist only forbidden values fail; misses are reported in the overview."""
    first = _run({"A": [(1, ReuseReason.NEW)], "B": [(2, ReuseReason.NEW)]})
    second = _run({"A": [(1, ReuseReason.CACHED)], "B": [(2, ReuseReason.MODIFIED)]})

    unchecked = verify_caching(first, second, "Gen")
    assert unchecked.ok is True
    assert unchecked.checked_steps == []
    assert unchecked.report.failed == []

    result = verify_caching(first, second, "Gen", required_steps=["A", "B"])
    assert result.ok is False
    assert result.checked_steps == ["A", "B"]
    assert result.reasons == ["Caching Failures (1 steps)"]
    assert [f.step for f in result.report.failed] == ["B"]
    assert "--- ISSUE 1: Step Not Cached 'B' ---" in result.failure_text


def test_forbidden_values_fail_without_allowlist():
    first = _run({"A": [(io.StringIO(), ReuseReason.NEW)]})
    second = _run({"A": [(1, ReuseReason.CACHED)]})

    result = verify_caching(first, second, "Gen")

    assert result.ok is False
    assert result.reasons == ["Forbidden Types Detected"]
    assert [f.step for f in result.report.forbidden] == ["A"]


def test_required_steps_narrow_the_check():
    """Misses and forbidden values outside the required steps are ignored."""
    first = _run({"A": [(1, ReuseReason.NEW)], "B": [(io.StringIO(), ReuseReason.NEW)]})
    second = _run({"A": [(1, ReuseReason.CACHED)], "B": [(2, ReuseReason.MODIFIED)]})

    narrowed = verify_caching(first, second, "Gen", required_steps=["A"])
    assert narrowed.ok is True
    # Violations outside the allowlist stay out of the payload
    assert narrowed.report.forbidden == []
    assert [i.type for i in narrowed.report.issues] == []

    result = verify_caching(first, second, "Gen", required_steps=["B"])
    assert result.reasons == ["Forbidden Types Detected", "Caching Failures (1 steps)"]


def test_missing_required_step_raises():
    first = _run({"A": [(1, ReuseReason.NEW)]})
    second = _run({"A": [(1, ReuseReason.CACHED)]})

    with pytest.raises(MissingStepError) as exc_info:
        verify_caching(first, second, "Gen", required_steps=["Nope"])
    assert exc_info.value.found == ["A"]


def test_no_tracked_steps_raises_tracking_unavailable():
    with pytest.raises(TrackingUnavailableError, match="Gen"):
        verify_caching(PipelineRun(), PipelineRun(), "Gen")


def test_missing_output_only_fails_when_required():
    first = _run({"A": [(1, ReuseReason.NEW)]}, artifacts=())
    second = _run({"A": [(1, ReuseReason.CACHED)]}, artifacts=())

    assert verify_caching(first, second, "Gen").ok is True

    strict = verify_caching(first, second, "Gen", settings=VerifierSettings(require_output=True))
    assert strict.ok is False
    assert strict.reasons == ["No Meaningful Output"]
    assert "No Meaningful Output Produced" in strict.failure_text


def test_json_reporting_setting_adds_machine_section():
    first = _run({"A": [(1, ReuseReason.NEW)]})
    second = _run({"A": [(1, ReuseReason.NEW)]})

    result = verify_caching(
        first, second, "Gen", required_steps=["A"], settings=VerifierSettings(json_reporting=True)
    )

    assert "--- MACHINE REPORT (JSON) ---" in result.failure_text


def test_custom_forbidden_types():
    class Handle:
        pass

    first = _run({"A": [(Handle(), ReuseReason.NEW)]})
    second = _run({"A": [(1, ReuseReason.CACHED)]})

    assert verify_caching(first, second, "Gen").ok is True
    assert verify_caching(first, second, "Gen", forbidden_types=[Handle]).ok is False


def test_none_run_raises_value_error():
    with pytest.raises(ValueError):
        verify_caching(None, PipelineRun(), "Gen")


def test_check_identity_accepts_runs():
    shared = Artifact("Model.g.cs", "class Model {}")
    first = PipelineRun(artifacts=[shared])
    second = PipelineRun(artifacts=[shared])

    result = check_identity(first, second, run_result=second)

    assert isinstance(result, IdentityCacheResult)
    assert result.classify() == {"Model.g.cs": "unchanged"}
    result.validate()
