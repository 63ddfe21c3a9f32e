"""cacheproof: differential caching verification for incremental pipelines."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("cacheproof")
except PackageNotFoundError:
    __version__ = "dev"

# Public API exports
# Kernel builders are exported from cacheproof.api, not from root
from cacheproof.api import verify_caching, check_identity, CachingVerification
from cacheproof.config import VerifierSettings
from cacheproof.codes import ReuseReason, ClassifierPolicy
from cacheproof.contracts import FailurePayload
from cacheproof.kernel.identity import IdentityCacheError, MaterializedOutput
from cacheproof.kernel.report import MissingStepError, TrackingUnavailableError, VerificationError
from cacheproof.kernel.trace import Artifact, PipelineRun, StepExecution, StepOutput

__all__ = [
    "__version__",
    "verify_caching",
    "check_identity",
    "CachingVerification",
    "VerifierSettings",
    "ReuseReason",
    "ClassifierPolicy",
    "FailurePayload",
    "PipelineRun",
    "StepExecution",
    "StepOutput",
    "Artifact",
    "MaterializedOutput",
    "VerificationError",
    "MissingStepError",
    "TrackingUnavailableError",
    "IdentityCacheError",
]
