"""Data models shared by every pipeline stage."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Severity = Literal["BLOCKER", "IMPORTANT", "SUGGESTION"]

GATES_NOTE = (
    "If lint/tests fail, Gemini should not nitpick formatting; "
    "focus on high-risk logic only."
)


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------
class PRInfo(BaseModel):
    """Change-set metadata as stored in the bundle."""

    model_config = ConfigDict(populate_by_name=True)

    repo: str = ""
    number: int = 0
    title: str = ""
    body: str = ""
    user: str | None = None
    base: str | None = None
    head: str | None = None
    head_sha: str | None = Field(default=None, alias="headSha")


class FileDiff(BaseModel):
    """One changed path kept for analysis."""

    filename: str
    status: str
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: str = ""
    patch_missing: bool = False


class BundleStats(BaseModel):
    files_changed: int = 0
    files_included: int = 0
    total_additions: int = 0
    total_deletions: int = 0
    patch_missing_files: list[str] = Field(default_factory=list)

    @property
    def total_changes(self) -> int:
        return self.total_additions + self.total_deletions


class Bundle(BaseModel):
    """Bounded snapshot of a pull request's diffs, the LLM's only input."""

    pr: PRInfo
    stats: BundleStats
    diffs: list[FileDiff] = Field(default_factory=list)
    gates: dict[str, str] = Field(default_factory=lambda: {"note": GATES_NOTE})

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


# ---------------------------------------------------------------------------
# Findings
# ---------------------------------------------------------------------------
class FindingItem(BaseModel):
    """A blocker, important issue or suggestion."""

    title: str = ""
    details: str = ""
    files: list[str] = Field(default_factory=list)
    suggested_fix: str = ""


class MissingTest(BaseModel):
    """A test the change should come with."""

    title: str = ""
    details: str = ""
    files: list[str] = Field(default_factory=list)
    suggested_test: str = ""


class RiskItem(FindingItem):
    """Security, performance or reliability finding with its own severity."""

    severity: Severity = "IMPORTANT"

    @field_validator("severity", mode="before")
    @classmethod
    def _upper(cls, value):
        return value.strip().upper() if isinstance(value, str) else value


class Findings(BaseModel):
    """Structured analysis document returned by the analysis model."""

    blockers: list[FindingItem] = Field(default_factory=list)
    important: list[FindingItem] = Field(default_factory=list)
    suggestions: list[FindingItem] = Field(default_factory=list)
    test_gaps: list[MissingTest] = Field(default_factory=list)
    security: list[RiskItem] = Field(default_factory=list)
    performance: list[RiskItem] = Field(default_factory=list)
    reliability: list[RiskItem] = Field(default_factory=list)
    summary: list[str] = Field(default_factory=list)

    @field_validator("summary", mode="before")
    @classmethod
    def _summary_as_list(cls, value):
        if isinstance(value, str):
            return [value] if value.strip() else []
        return value

    @classmethod
    def fallback(cls, summary: list[str]) -> "Findings":
        """Empty findings carrying only an explanation for the reviewer."""
        return cls(summary=list(summary))

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)


# ---------------------------------------------------------------------------
# Merge recommendation
# ---------------------------------------------------------------------------
class MergeRecommendation(str, Enum):
    SAFE_TO_MERGE = "safe-to-merge"
    NEEDS_CHANGES = "needs-changes"
    DO_NOT_MERGE = "do-not-merge"


def important_signal_count(findings: Findings) -> int:
    """Important items plus every non-suggestion risk item."""
    risk_items = findings.security + findings.performance + findings.reliability
    return len(findings.important) + sum(
        1 for item in risk_items if item.severity != "SUGGESTION"
    )


def recommend_merge(findings: Findings | None) -> MergeRecommendation:
    """Verdict derived from counts only; the model's own opinion is ignored."""
    if findings is None:
        return MergeRecommendation.SAFE_TO_MERGE
    if findings.blockers:
        return MergeRecommendation.DO_NOT_MERGE
    if important_signal_count(findings) > 0:
        return MergeRecommendation.NEEDS_CHANGES
    return MergeRecommendation.SAFE_TO_MERGE
