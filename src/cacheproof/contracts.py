"""Public failure-payload models for cacheproof.

Field names follow the machine-readable wire shape (``producedOutput``,
``forbidden``, ``failed``, ``issues``); Python attribute names are snake_case.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ForbiddenEntry(BaseModel):
    """One forbidden value retained in a cached step output."""
    model_config = ConfigDict(extra="forbid")

    step: str
    type: str  # Fully-qualified type name
    path: str  # e.g. "Output.items[2].inner"


class FailedStepEntry(BaseModel):
    """Reuse counts for a step that missed the cache."""
    model_config = ConfigDict(extra="forbid")

    step: str
    cached: int
    unchanged: int
    modified: int
    new: int
    removed: int


class MachineIssue(BaseModel):
    """One issue in tool-consumable form."""
    model_config = ConfigDict(extra="forbid")

    type: str  # "ForbiddenType" | "CacheFailure" | "NoOutput"
    severity: str  # "CRITICAL" | "ERROR" | "WARN"
    step: Optional[str] = None
    count: Optional[int] = None  # Violations (ForbiddenType) or missed outputs (CacheFailure)


class FailurePayload(BaseModel):
    """Structured verification failure, sorted for stable output."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    generator: str
    produced_output: bool = Field(alias="producedOutput")
    forbidden: List[ForbiddenEntry] = Field(default_factory=list)  # sorted by (step, path)
    failed: List[FailedStepEntry] = Field(default_factory=list)  # sorted by step
    issues: List[MachineIssue] = Field(default_factory=list)

    def to_wire(self) -> dict:
        """Dump using wire field names."""
        return self.model_dump(by_alias=True, exclude_none=False)
