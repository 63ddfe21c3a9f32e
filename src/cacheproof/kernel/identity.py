"""Identity cache checker.

Compares the generated artifacts of two materialized outputs by object
identity. An artifact that is equal by value but a distinct instance was
regenerated, not reused.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from cacheproof.codes import REUSED_REASONS
from cacheproof.kernel.report import VerificationError
from cacheproof.kernel.trace import Artifact, PipelineRun, normalize_reason

UNCHANGED = "unchanged"
CHANGED = "changed"


class IdentityCacheError(VerificationError, AssertionError):
    """Raised when artifacts were not reused (or not regenerated) as asserted."""
    pass


@dataclass(frozen=True)
class MaterializedOutput:
    """Everything one execution produced: its units plus diagnostics.

    ``units`` may hold source units as well as generated artifacts; only the
    ones named in the generated set are compared.
    """
    units: Tuple[Artifact, ...] = ()
    diagnostics: Tuple[Any, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "units", tuple(self.units))
        object.__setattr__(self, "diagnostics", tuple(self.diagnostics))

    @classmethod
    def from_run(cls, run: PipelineRun) -> "MaterializedOutput":
        return cls(units=run.artifacts, diagnostics=run.diagnostics)


ArtifactPair = Tuple[Artifact, Artifact]


class IdentityCacheResult:
    """Identity comparison between two materialized outputs.

    The generated set comes from ``run_result`` (the run captured after the
    second execution) or from explicit ``generated_names``. With neither,
    every unit counts as generated.
    """

    def __init__(
        self,
        first: MaterializedOutput,
        second: MaterializedOutput,
        generated_names: Optional[Iterable[str]] = None,
        run_result: Optional[PipelineRun] = None,
    ):
        if first is None or second is None:
            raise ValueError("Both first and second outputs are required")
        self.first = first
        self.second = second
        self.run_result = run_result

        if generated_names is not None:
            self.generated_names = frozenset(generated_names)
        elif run_result is not None:
            self.generated_names = frozenset(run_result.artifact_names)
        else:
            self.generated_names = None

        self._first_generated = self._generated(first)
        self._second_generated = self._generated(second)

    @property
    def first_diagnostics(self) -> Tuple[Any, ...]:
        return self.first.diagnostics

    @property
    def second_diagnostics(self) -> Tuple[Any, ...]:
        return self.second.diagnostics

    def _generated(self, output: MaterializedOutput) -> List[Artifact]:
        if self.generated_names is None:
            return list(output.units)
        return [unit for unit in output.units if unit.name in self.generated_names]

    def _pairs(self) -> List[ArtifactPair]:
        # Names are unique within an output; pair in first-output order
        second_by_name: Dict[str, Artifact] = {unit.name: unit for unit in self._second_generated}
        return [
            (unit, second_by_name[unit.name])
            for unit in self._first_generated
            if unit.name in second_by_name
        ]

    def unchanged_pairs(self) -> List[ArtifactPair]:
        """Artifacts present in both outputs as the same instance."""
        return [(a, b) for a, b in self._pairs() if a is b]

    def changed_pairs(self) -> List[ArtifactPair]:
        """Artifacts present in both outputs as distinct instances."""
        return [(a, b) for a, b in self._pairs() if a is not b]

    def classify(self) -> Dict[str, str]:
        """Map each artifact name present in both outputs to "unchanged" or "changed"."""
        return {a.name: (UNCHANGED if a is b else CHANGED) for a, b in self._pairs()}

    def assert_unchanged(self, *names: str) -> "IdentityCacheResult":
        """Require every named artifact to exist in both outputs as the same instance."""
        self._assert_state(names, UNCHANGED)
        return self

    def assert_changed(self, *names: str) -> "IdentityCacheResult":
        """Require every named artifact to exist in both outputs as distinct instances."""
        self._assert_state(names, CHANGED)
        return self

    def _assert_state(self, names: Tuple[str, ...], expected: str) -> None:
        states = self.classify()
        missing = sorted(name for name in set(names) if name not in states)
        wrong = sorted(name for name in set(names) if name in states and states[name] != expected)
        problems = []
        if missing:
            problems.append(f"not present in both outputs: {', '.join(missing)}")
        if wrong:
            problems.append(f"not {expected}: {', '.join(wrong)}")
        if problems:
            raise IdentityCacheError(f"Expected {expected} artifacts; " + "; ".join(problems))

    def validate(self) -> "IdentityCacheResult":
        """Default sanity pass.

        The first output must hold at least one generated artifact, and every
        artifact the run result tags as Cached or Unchanged must be the same
        instance in both outputs.
        """
        if not self._first_generated:
            raise IdentityCacheError("Pipeline produced no generated artifacts in the first output")
        if self.run_result is None:
            return self

        states = self.classify()
        not_reused = []
        for artifact in self.run_result.artifacts:
            if artifact.reason is None:
                continue
            if normalize_reason(artifact.reason) not in REUSED_REASONS:
                continue
            if states.get(artifact.name) != UNCHANGED:
                not_reused.append(artifact.name)
        if not_reused:
            raise IdentityCacheError(
                "Artifacts tagged as reused were not the same instance: "
                + ", ".join(sorted(not_reused))
            )
        return self
