"""Pipeline run trace model and step extraction.

A run trace is what the pipeline adapter captured for one execution: for each
tracked step registration, the ordered executions and their tagged outputs,
plus the generated artifacts. The same step name may be registered more than
once (e.g. the pipeline is wired twice); extraction merges those entries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from cacheproof.codes import ReuseReason

logger = logging.getLogger(__name__)


def normalize_reason(reason: Any) -> ReuseReason:
    """Map a raw reuse tag onto the closed ReuseReason set.

    Accepts ReuseReason members and their string values (case-insensitive).
    Anything else is a cache miss: MODIFIED.
    """
    if isinstance(reason, ReuseReason):
        return reason
    if isinstance(reason, str):
        for member in ReuseReason:
            if member.value.lower() == reason.lower():
                return member
    logger.warning("Unknown reuse reason %r counted as %s", reason, ReuseReason.MODIFIED.value)
    return ReuseReason.MODIFIED


@dataclass(frozen=True)
class StepOutput:
    """One value produced by a step execution, tagged with its reuse reason."""
    value: Any
    reason: Union[ReuseReason, str] = ReuseReason.NEW


@dataclass(frozen=True)
class StepExecution:
    """One invocation of a step: its ordered outputs and elapsed time."""
    outputs: Tuple[StepOutput, ...] = ()
    elapsed: timedelta = timedelta(0)

    def __post_init__(self):
        if not isinstance(self.outputs, tuple):
            object.__setattr__(self, "outputs", tuple(self.outputs))


@dataclass(frozen=True)
class Artifact:
    """A named unit of generated text.

    ``reason`` is the reuse tag of the sink output that emitted it, when the
    adapter knows it. Equality is by value; caching checks use identity.
    """
    name: str
    text: str = ""
    reason: Optional[Union[ReuseReason, str]] = None


StepEntry = Tuple[str, Tuple[StepExecution, ...]]


@dataclass(frozen=True)
class PipelineRun:
    """Immutable record of one pipeline execution."""
    tracked_steps: Tuple[StepEntry, ...] = ()  # (step_name, executions), names may repeat
    artifacts: Tuple[Artifact, ...] = ()
    diagnostics: Tuple[Any, ...] = ()

    def __post_init__(self):
        object.__setattr__(
            self,
            "tracked_steps",
            tuple((name, tuple(executions)) for name, executions in self.tracked_steps),
        )
        object.__setattr__(self, "artifacts", tuple(self.artifacts))
        object.__setattr__(self, "diagnostics", tuple(self.diagnostics))

    @classmethod
    def from_mapping(
        cls,
        steps: Mapping[str, Iterable[StepExecution]],
        artifacts: Iterable[Artifact] = (),
        diagnostics: Iterable[Any] = (),
    ) -> "PipelineRun":
        """Build a run from a plain {step_name: executions} mapping."""
        return cls(
            tracked_steps=tuple((name, tuple(executions)) for name, executions in steps.items()),
            artifacts=tuple(artifacts),
            diagnostics=tuple(diagnostics),
        )

    @property
    def artifact_names(self) -> List[str]:
        return [artifact.name for artifact in self.artifacts]

    def iter_outputs(self) -> Iterable[Tuple[str, StepOutput]]:
        """Yield (step_name, output) for every output in trace order."""
        for step_name, executions in self.tracked_steps:
            for execution in executions:
                for output in execution.outputs:
                    yield step_name, output


def extract_steps(run: PipelineRun) -> Dict[str, List[StepExecution]]:
    """Group a run's tracked steps by name.

    Executions of repeated registrations are concatenated in trace order.
    Steps with no executions still get an (empty) entry.
    """
    steps: Dict[str, List[StepExecution]] = {}
    for step_name, executions in run.tracked_steps:
        steps.setdefault(step_name, []).extend(executions)
    return steps


def total_elapsed(executions: Sequence[StepExecution]) -> timedelta:
    """Sum elapsed time across executions (zero for none)."""
    total = timedelta(0)
    for execution in executions:
        total += execution.elapsed
    return total
