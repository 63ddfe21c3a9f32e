"""Pytest configuration for tests.

No sys.path hacks - tests import from the installed cacheproof package.
"""

import os

import pytest


def pytest_addoption(parser):
    """Add gated perf test option."""
    parser.addoption(
        "--run-perf",
        action="store_true",
        default=False,
        help="Run scanner performance sentinels (gated)."
    )


def pytest_collection_modifyitems(config, items):
    """Skip perf-marked tests unless --run-perf is set."""
    if config.getoption("--run-perf"):
        return
    skip_perf = pytest.mark.skip(reason="perf tests gated; pass --run-perf")
    for item in items:
        if "perf" in item.keywords:
            item.add_marker(skip_perf)


@pytest.fixture(autouse=True)
def _isolated_settings_env(monkeypatch):
    """Keep CACHEPROOF_* variables from the outer environment out of tests."""
    for name in list(os.environ):
        if name.startswith("CACHEPROOF_"):
            monkeypatch.delenv(name, raising=False)
