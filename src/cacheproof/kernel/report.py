"""Caching report across two pipeline runs.

The first run is scanned for forbidden values (it is the run whose outputs
end up in the cache). The second run's reuse tags show whether each step
actually reused those outputs.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from cacheproof.config import VerifierSettings
from cacheproof.kernel.classify import is_infrastructure_artifact, is_infrastructure_step
from cacheproof.kernel.scanner import ForbiddenTypeViolation, scan_run
from cacheproof.kernel.tally import StepVerdict, tally_step
from cacheproof.kernel.trace import PipelineRun, extract_steps

logger = logging.getLogger(__name__)


class VerificationError(Exception):
    """Base exception for caller-facing verification preconditions."""
    pass


class MissingStepError(VerificationError):
    """Raised when explicitly requested steps were not tracked in either run."""
    def __init__(self, missing: Iterable[str], found: Iterable[str]):
        self.missing = sorted(set(missing))
        self.found = sorted(set(found))
        found_str = ", ".join(self.found) if self.found else "none"
        super().__init__(
            f"Steps not found in either run: {', '.join(self.missing)}\n"
            f"  Tracked steps: {found_str}"
        )


class TrackingUnavailableError(VerificationError):
    """Raised when neither run tracked any step, so nothing can be verified."""
    def __init__(self, pipeline_name: str):
        self.pipeline_name = pipeline_name
        super().__init__(
            f"No tracked steps recorded for pipeline '{pipeline_name}'. "
            f"Enable step tracking in the pipeline adapter and name the steps to verify."
        )


@dataclass(frozen=True)
class CachingReport:
    """Verdicts, violations and output flag for one two-run comparison."""
    pipeline_name: str
    observable_steps: Tuple[StepVerdict, ...]  # Sorted by step name
    infrastructure_steps: Tuple[StepVerdict, ...]  # Sorted by step name
    violations: Tuple[ForbiddenTypeViolation, ...]
    produced_meaningful_output: bool

    @property
    def is_correct(self) -> bool:
        """No forbidden values were retained. Reuse verdicts are checked separately."""
        return len(self.violations) == 0

    @property
    def all_steps(self) -> Tuple[StepVerdict, ...]:
        return tuple(sorted(self.observable_steps + self.infrastructure_steps, key=lambda s: s.step_name))

    @property
    def step_names(self) -> List[str]:
        return [step.step_name for step in self.all_steps]

    @property
    def has_tracked_steps(self) -> bool:
        return bool(self.observable_steps or self.infrastructure_steps)

    def get_step(self, step_name: str) -> Optional[StepVerdict]:
        for step in self.all_steps:
            if step.step_name == step_name:
                return step
        return None

    def violations_for(self, step_names: Optional[Iterable[str]] = None) -> List[ForbiddenTypeViolation]:
        if step_names is None:
            return list(self.violations)
        wanted = set(step_names)
        return [v for v in self.violations if v.step_name in wanted]

    def select_steps(self, required_steps: Optional[Sequence[str]] = None) -> List[StepVerdict]:
        """Verdicts to hold to caching requirements.

        With no explicit steps, every observable step. Explicit steps may name
        infrastructure steps too; any name absent from both runs raises
        MissingStepError listing the names that were found.
        """
        if not required_steps:
            return list(self.observable_steps)
        by_name: Dict[str, StepVerdict] = {step.step_name: step for step in self.all_steps}
        missing = [name for name in required_steps if name not in by_name]
        if missing:
            raise MissingStepError(missing, by_name.keys())
        return [by_name[name] for name in dict.fromkeys(required_steps)]

    def failed_steps(self, required_steps: Optional[Sequence[str]] = None) -> List[StepVerdict]:
        """Selected verdicts that are not cached successfully."""
        return [step for step in self.select_steps(required_steps) if not step.is_cached_successfully]

    def to_dict(self) -> dict:
        return {
            "pipeline": self.pipeline_name,
            "produced_meaningful_output": self.produced_meaningful_output,
            "observable_steps": [step.to_dict() for step in self.observable_steps],
            "infrastructure_steps": [step.to_dict() for step in self.infrastructure_steps],
            "violations": [
                {"step": v.step_name, "type": v.type_name, "path": v.path}
                for v in self.violations
            ],
        }


def build_caching_report(
    first_run: PipelineRun,
    second_run: PipelineRun,
    pipeline_name: str,
    settings: Optional[VerifierSettings] = None,
    forbidden_types: Optional[Iterable[type]] = None,
) -> CachingReport:
    """Compare two runs of the same pipeline over equivalent input.

    Pure: inputs are not mutated and repeated calls return equal reports.
    A pair of runs with no tracked steps yields an empty report.
    """
    if first_run is None or second_run is None:
        raise ValueError("Both first_run and second_run are required")
    if settings is None:
        settings = VerifierSettings()

    violations = scan_run(first_run, settings=settings, forbidden_types=forbidden_types)
    forbidden_steps = {v.step_name for v in violations}

    first_steps = extract_steps(first_run)
    second_steps = extract_steps(second_run)

    observable: List[StepVerdict] = []
    infrastructure: List[StepVerdict] = []
    for step_name in sorted(set(first_steps) | set(second_steps)):
        verdict = tally_step(
            step_name,
            second_steps.get(step_name, []),
            has_forbidden_values=step_name in forbidden_steps,
            first_run=first_steps.get(step_name, []),
        )
        if is_infrastructure_step(step_name, settings):
            infrastructure.append(verdict)
        else:
            observable.append(verdict)

    produced_output = any(
        not is_infrastructure_artifact(artifact.name, settings.infrastructure_artifact_markers)
        for artifact in second_run.artifacts
    )

    logger.debug(
        "Caching report for %s: %d observable, %d infrastructure, %d violations, output=%s",
        pipeline_name, len(observable), len(infrastructure), len(violations), produced_output,
    )
    return CachingReport(
        pipeline_name=pipeline_name,
        observable_steps=tuple(observable),
        infrastructure_steps=tuple(infrastructure),
        violations=tuple(violations),
        produced_meaningful_output=produced_output,
    )
