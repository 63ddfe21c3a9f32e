"""Scanner performance sentinels.

Synthetic pathological output graphs plus time budgets. Budgets can be
raised on slow machines through ``CACHEPROOF_MAX_*_MS`` variables.
"""

from __future__ import annotations

import io
import os
from time import perf_counter
from typing import Any, Callable, Dict, List, Tuple

from cacheproof.config import VerifierSettings
from cacheproof.kernel.scanner import ForbiddenTypeViolation, scan_run
from cacheproof.kernel.trace import PipelineRun, StepExecution, StepOutput


def _budget_from_env(var_name: str, default_ms: float) -> float:
    raw = os.getenv(var_name)
    if not raw:
        return default_ms
    try:
        return float(raw)
    except ValueError:
        return default_ms


MAX_DEEP_CHAIN_MS = _budget_from_env("CACHEPROOF_MAX_DEEP_CHAIN_MS", 500.0)
MAX_WIDE_RECORDS_MS = _budget_from_env("CACHEPROOF_MAX_WIDE_RECORDS_MS", 1500.0)
MAX_DENSE_CYCLES_MS = _budget_from_env("CACHEPROOF_MAX_DENSE_CYCLES_MS", 1000.0)
MAX_FORBIDDEN_FLOOD_MS = _budget_from_env("CACHEPROOF_MAX_FORBIDDEN_FLOOD_MS", 500.0)


class _Record:
    def __init__(self, index: int, tags: List[str], children: List[Any]):
        self.index = index
        self.tags = tags
        self.children = children


def _single_output_run(value: Any, step: str = "Transform") -> PipelineRun:
    return PipelineRun.from_mapping({step: [StepExecution(outputs=[StepOutput(value)])]})


def deep_chain_run(depth: int = 10_000) -> PipelineRun:
    """One list nested ``depth`` times; exercises the depth cap."""
    value: Any = io.StringIO()
    for _ in range(depth):
        value = [value]
    return _single_output_run(value)


def wide_records_run(count: int = 20_000) -> PipelineRun:
    """Many small plain records across many outputs; no violations."""
    outputs = [
        StepOutput(_Record(i, [f"t{i}", f"u{i}"], [{"k": i}]))
        for i in range(count)
    ]
    return PipelineRun.from_mapping({"Transform": [StepExecution(outputs=outputs)]})


def dense_cycles_run(count: int = 5_000) -> PipelineRun:
    """Records that all point at each other through a shared list."""
    shared: List[Any] = []
    for i in range(count):
        shared.append(_Record(i, [], shared))
    return _single_output_run(shared)


def forbidden_flood_run(count: int = 100_000) -> PipelineRun:
    """Far more forbidden values than the violation cap."""
    return _single_output_run([io.StringIO() for _ in range(count)])


SENTINELS: Dict[str, Callable[[], PipelineRun]] = {
    "deep_chain": deep_chain_run,
    "wide_records": wide_records_run,
    "dense_cycles": dense_cycles_run,
    "forbidden_flood": forbidden_flood_run,
}


def run_sentinel_case(case: str, settings: VerifierSettings | None = None) -> Tuple[float, List[ForbiddenTypeViolation]]:
    """Build the sentinel run, scan it, and return elapsed ms plus violations."""
    run = SENTINELS[case]()
    start = perf_counter()
    violations = scan_run(run, settings=settings)
    elapsed_ms = (perf_counter() - start) * 1000.0
    return elapsed_ms, violations
