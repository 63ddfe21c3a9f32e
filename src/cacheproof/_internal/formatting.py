"""Render caching failures as text and JSON (internal).

The text form is meant for console/CI assertion messages; the JSON form
carries the same facts for tooling.
"""

import json
from itertools import groupby
from typing import Dict, List, Optional, Sequence

from cacheproof.codes import IssueCode, IssueSeverity
from cacheproof.contracts import FailedStepEntry, FailurePayload, ForbiddenEntry, MachineIssue
from cacheproof.kernel.report import CachingReport
from cacheproof.kernel.scanner import ForbiddenTypeViolation
from cacheproof.kernel.tally import StepVerdict


def _group_violations(violations: Sequence[ForbiddenTypeViolation]) -> Dict[str, List[ForbiddenTypeViolation]]:
    ordered = sorted(violations, key=lambda v: v.sort_key())
    return {step: list(group) for step, group in groupby(ordered, key=lambda v: v.step_name)}


def build_failure_payload(
    report: CachingReport,
    failed_steps: Sequence[StepVerdict] = (),
    violations: Optional[Sequence[ForbiddenTypeViolation]] = None,
) -> FailurePayload:
    """Structured form of a verification failure.

    Lists are sorted (forbidden by step then path, failed by step) so the
    same report always yields the same payload. ``violations`` narrows the
    forbidden entries; it defaults to every violation in the report.
    """
    if violations is None:
        violations = report.violations
    forbidden = [
        ForbiddenEntry(step=v.step_name, type=v.type_name, path=v.path)
        for v in sorted(violations, key=lambda v: v.sort_key())
    ]
    failed_sorted = sorted(failed_steps, key=lambda s: s.step_name)
    failed = [
        FailedStepEntry(
            step=s.step_name,
            cached=s.cached,
            unchanged=s.unchanged,
            modified=s.modified,
            new=s.new,
            removed=s.removed,
        )
        for s in failed_sorted
    ]

    issues: List[MachineIssue] = []
    for step_name, group in _group_violations(violations).items():
        issues.append(MachineIssue(
            type=IssueCode.FORBIDDEN_TYPE.value,
            severity=IssueSeverity.CRITICAL.value,
            step=step_name,
            count=len(group),
        ))
    for s in failed_sorted:
        issues.append(MachineIssue(
            type=IssueCode.CACHE_FAILURE.value,
            severity=IssueSeverity.ERROR.value,
            step=s.step_name,
            count=s.modified + s.new + s.removed,
        ))
    if not report.produced_meaningful_output:
        issues.append(MachineIssue(type=IssueCode.NO_OUTPUT.value, severity=IssueSeverity.WARN.value))

    return FailurePayload(
        generator=report.pipeline_name,
        produced_output=report.produced_meaningful_output,
        forbidden=forbidden,
        failed=failed,
        issues=issues,
    )


def render_failure_json(
    report: CachingReport,
    failed_steps: Sequence[StepVerdict] = (),
    indent: Optional[int] = 2,
    violations: Optional[Sequence[ForbiddenTypeViolation]] = None,
) -> str:
    """Failure payload as sorted-key JSON using wire field names."""
    payload = build_failure_payload(report, failed_steps, violations=violations)
    return json.dumps(payload.to_wire(), sort_keys=True, indent=indent, ensure_ascii=False)


def render_failure_text(
    report: CachingReport,
    failed_steps: Sequence[StepVerdict] = (),
    required_steps: Optional[Sequence[str]] = None,
    include_json: bool = False,
    violations: Optional[Sequence[ForbiddenTypeViolation]] = None,
) -> str:
    """Human-readable failure report: numbered issues, then a full step overview."""
    if violations is None:
        violations = report.violations
    lines: List[str] = []
    issue_number = 0

    for step_name, group in _group_violations(violations).items():
        issue_number += 1
        lines.append(f"--- ISSUE {issue_number} (CRITICAL): Forbidden Type Cached in '{step_name}' ---")
        lines.append("  Detail: Cached outputs holding host objects keep them alive and defeat reuse.")
        lines.append("  Recommendation: Store only plain, value-comparable data (prefer frozen dataclasses).")
        for violation in group:
            lines.append(f"    - {violation.type_name} at {violation.path}")
        lines.append("")

    for step in sorted(failed_steps, key=lambda s: s.step_name):
        issue_number += 1
        lines.append(f"--- ISSUE {issue_number}: Step Not Cached '{step.step_name}' ---")
        lines.append(f"  Breakdown: {step.format_breakdown()}")
        if step.has_forbidden_values:
            lines.append("  Root Cause: Likely forbidden host objects cached.")
        else:
            lines.append("  Recommendation: Ensure the output model has value equality.")
        lines.append("")

    if not report.produced_meaningful_output and issue_number == 0:
        issue_number += 1
        lines.append(f"--- ISSUE {issue_number}: No Meaningful Output Produced ---")
        lines.append("  Detail: Pipeline produced no non-infrastructure artifacts.")
        lines.append("")

    tracked = set(required_steps or ())
    lines.append("=== Full Pipeline Overview ===")
    for step in report.observable_steps:
        icon = "[OK]" if step.is_cached_successfully else "[FAIL]"
        markers = []
        if step.step_name in tracked:
            markers.append("[Tracked]")
        if step.has_forbidden_values:
            markers.append("[!]")
        label = " ".join([step.step_name] + markers)
        lines.append(f"  {icon} {label} | {step.format_breakdown()} | {step.format_performance()}")

    if include_json:
        lines.append("")
        lines.append("--- MACHINE REPORT (JSON) ---")
        lines.append(render_failure_json(report, failed_steps, violations=violations))

    return "\n".join(lines) + "\n"
