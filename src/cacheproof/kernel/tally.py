"""Per-step reuse tally.

Counts a step's second-run outputs by reuse reason. Cached and Unchanged are
reuse; Modified, New and Removed are cache misses. Unknown reasons count as
Modified.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Sequence

from cacheproof.codes import ReuseReason
from cacheproof.kernel.trace import StepExecution, normalize_reason, total_elapsed


@dataclass(frozen=True)
class StepVerdict:
    """Reuse counts for one step on the second run."""
    step_name: str
    cached: int = 0
    unchanged: int = 0
    modified: int = 0
    new: int = 0
    removed: int = 0
    has_forbidden_values: bool = False
    elapsed_first_run: timedelta = timedelta(0)
    elapsed_second_run: timedelta = timedelta(0)

    @property
    def total_outputs(self) -> int:
        return self.cached + self.unchanged + self.modified + self.new + self.removed

    @property
    def is_cached_successfully(self) -> bool:
        """No output missed the cache (Unchanged still counts as reuse)."""
        return self.modified == 0 and self.new == 0 and self.removed == 0

    @property
    def is_truly_cached(self) -> bool:
        """Every output was skipped outright; nothing even re-ran."""
        return self.is_cached_successfully and self.unchanged == 0

    def count(self, reason: ReuseReason) -> int:
        return {
            ReuseReason.CACHED: self.cached,
            ReuseReason.UNCHANGED: self.unchanged,
            ReuseReason.MODIFIED: self.modified,
            ReuseReason.NEW: self.new,
            ReuseReason.REMOVED: self.removed,
        }[reason]

    def format_breakdown(self) -> str:
        return (
            f"C:{self.cached} U:{self.unchanged} | "
            f"M:{self.modified} N:{self.new} R:{self.removed} (Total:{self.total_outputs})"
        )

    def format_performance(self) -> str:
        first_ms = self.elapsed_first_run.total_seconds() * 1000
        second_ms = self.elapsed_second_run.total_seconds() * 1000
        return f"{first_ms:.2f}ms -> {second_ms:.2f}ms"

    def to_dict(self) -> dict:
        return {
            "step": self.step_name,
            "cached": self.cached,
            "unchanged": self.unchanged,
            "modified": self.modified,
            "new": self.new,
            "removed": self.removed,
            "has_forbidden_values": self.has_forbidden_values,
        }


def tally_step(
    step_name: str,
    second_run: Sequence[StepExecution],
    has_forbidden_values: bool = False,
    first_run: Sequence[StepExecution] = (),
) -> StepVerdict:
    """Build the verdict for one step from its second-run executions.

    ``first_run`` only contributes timing.
    """
    counts = {reason: 0 for reason in ReuseReason}
    for execution in second_run:
        for output in execution.outputs:
            counts[normalize_reason(output.reason)] += 1

    return StepVerdict(
        step_name=step_name,
        cached=counts[ReuseReason.CACHED],
        unchanged=counts[ReuseReason.UNCHANGED],
        modified=counts[ReuseReason.MODIFIED],
        new=counts[ReuseReason.NEW],
        removed=counts[ReuseReason.REMOVED],
        has_forbidden_values=has_forbidden_values,
        elapsed_first_run=total_elapsed(first_run),
        elapsed_second_run=total_elapsed(second_run),
    )
