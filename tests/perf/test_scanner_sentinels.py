"""Scanner performance sentinels (gated)."""

from __future__ import annotations

import pytest

from cacheproof._internal.benchmarks import (
    MAX_DEEP_CHAIN_MS,
    MAX_DENSE_CYCLES_MS,
    MAX_FORBIDDEN_FLOOD_MS,
    MAX_WIDE_RECORDS_MS,
    SENTINELS,
)
from cacheproof.kernel.scanner import scan_run


def _assert_budget(benchmark, max_ms: float) -> None:
    mean_ms = benchmark.stats.stats.mean * 1000.0
    assert mean_ms < max_ms, f"Mean {mean_ms:.2f} ms exceeded budget {max_ms:.2f} ms"


@pytest.mark.perf
def test_deep_chain_sentinel(benchmark):
    run = SENTINELS["deep_chain"]()
    violations = benchmark.pedantic(lambda: scan_run(run), rounds=3, iterations=1)

    assert violations == []

    _assert_budget(benchmark, MAX_DEEP_CHAIN_MS)


@pytest.mark.perf
def test_wide_records_sentinel(benchmark):
    run = SENTINELS["wide_records"]()
    violations = benchmark.pedantic(lambda: scan_run(run), rounds=3, iterations=1)

    assert violations == []

    _assert_budget(benchmark, MAX_WIDE_RECORDS_MS)


@pytest.mark.perf
def test_dense_cycles_sentinel(benchmark):
    run = SENTINELS["dense_cycles"]()
    violations = benchmark.pedantic(lambda: scan_run(run), rounds=3, iterations=1)

    assert violations == []

    _assert_budget(benchmark, MAX_DENSE_CYCLES_MS)


@pytest.mark.perf
def test_forbidden_flood_sentinel(benchmark):
    run = SENTINELS["forbidden_flood"]()
    violations = benchmark.pedantic(lambda: scan_run(run), rounds=3, iterations=1)

    assert len(violations) == 256

    _assert_budget(benchmark, MAX_FORBIDDEN_FLOOD_MS)
