"""Code constants for cacheproof.

These enums prevent stringly-typed reuse reasons, issue codes and
classifier policies from leaking into client code.
"""

from enum import Enum


class ReuseReason(str, Enum):
    """Reuse tag a pipeline attaches to one step output on a run.

    Closed set: anything outside it is treated as MODIFIED (a cache miss).
    """

    CACHED = "Cached"  # Step did not run; prior output reused
    UNCHANGED = "Unchanged"  # Step ran again, value compared equal
    MODIFIED = "Modified"  # Step ran again, value differs
    NEW = "New"  # Output did not exist on the prior run
    REMOVED = "Removed"  # Output existed on the prior run, no longer produced


REUSED_REASONS = frozenset({ReuseReason.CACHED, ReuseReason.UNCHANGED})


class IssueCode(str, Enum):
    """Machine-readable issue types in a failure payload."""

    FORBIDDEN_TYPE = "ForbiddenType"
    CACHE_FAILURE = "CacheFailure"
    NO_OUTPUT = "NoOutput"


class IssueSeverity(str, Enum):
    """Severity attached to each machine-readable issue."""

    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARN = "WARN"


class ClassifierPolicy(str, Enum):
    """Which steps are exempt from caching requirements."""

    SINK_ONLY = "sink_only"  # Only output-registration sinks are infrastructure
    STRICT = "strict"  # Sinks plus host-owned input steps
