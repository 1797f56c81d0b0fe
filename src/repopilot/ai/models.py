"""Analysis result models for the AI proposal engine.

This module defines the Fix Proposal and the task-specific analysis
results. Every result carries a ``task`` literal so the results form a
tagged union (``AnalysisResult``) that callers can match on exhaustively.

Field names are snake_case in Python and camelCase on the wire, matching
the JSON the model is asked to produce and the shape persisted by the
result store.
"""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class AnalysisTask(str, Enum):
    """The task variants the engine knows how to run."""

    ISSUE_ANALYSIS = "issue_analysis"
    PR_REVIEW = "pr_review"
    CI_FAILURE = "ci_failure"
    DOCUMENTATION = "documentation"
    TRIAGE = "triage"


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReviewStatus(str, Enum):
    APPROVE = "approve"
    REQUEST_CHANGES = "request_changes"
    COMMENT = "comment"


class WireModel(BaseModel):
    """Base model accepting both snake_case and camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        """Serialize with camelCase keys, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class FileChange(WireModel):
    """A full-file replacement. Partial patches are never produced."""

    file_path: str = Field(..., min_length=1)
    new_content: str


class FixProposal(WireModel):
    """AI-generated bundle of file replacements plus Git/PR metadata.

    Attributes:
        commit_message: Conventional-commit style message.
        branch_name: Branch to create; must not exist in the target repo.
        pr_title: Title of the pull request to open.
        pr_body: Markdown body of the pull request.
        changes: Full-content replacements; at least one.
    """

    commit_message: str = Field(..., min_length=1)
    branch_name: str = Field(..., min_length=1)
    pr_title: str = Field(..., min_length=1)
    pr_body: str
    changes: List[FileChange] = Field(..., min_length=1)

    @property
    def file_paths(self) -> List[str]:
        return [change.file_path for change in self.changes]


class ProposingResult(WireModel):
    """Shared shape of results that may carry a Fix Proposal.

    ``fix`` is present only when ``should_propose_fix`` is true; the
    engine enforces this before a result is ever returned.
    """

    should_propose_fix: bool = False
    fix: Optional[FixProposal] = None

    @property
    def is_actionable(self) -> bool:
        return self.should_propose_fix and self.fix is not None


class IssueAnalysis(ProposingResult):
    task: Literal[AnalysisTask.ISSUE_ANALYSIS] = AnalysisTask.ISSUE_ANALYSIS
    analysis: str
    suggested_fix: str
    complexity: Complexity

    @field_validator("complexity", mode="before")
    @classmethod
    def normalize_complexity(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class PRReview(ProposingResult):
    task: Literal[AnalysisTask.PR_REVIEW] = AnalysisTask.PR_REVIEW
    status: ReviewStatus
    feedback: str
    score: float
    critical_issues: List[str] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("score", mode="before")
    @classmethod
    def reject_boolean_score(cls, v):
        if isinstance(v, bool):
            raise ValueError("score must be a number")
        return v

    @field_validator("score", mode="after")
    @classmethod
    def clamp_score(cls, v: float) -> float:
        """Clamp the coerced quality score into 0..100."""
        return max(0.0, min(100.0, v))

    @field_validator("critical_issues", mode="before")
    @classmethod
    def default_critical_issues(cls, v):
        return [] if v is None else v


class CIAnalysis(ProposingResult):
    task: Literal[AnalysisTask.CI_FAILURE] = AnalysisTask.CI_FAILURE
    analysis: str
    suggested_fix: str


class TriageResult(WireModel):
    task: Literal[AnalysisTask.TRIAGE] = AnalysisTask.TRIAGE
    needs_info: bool
    missing_info_reason: str = ""
    question: str = ""


class DocumentationResult(WireModel):
    task: Literal[AnalysisTask.DOCUMENTATION] = AnalysisTask.DOCUMENTATION
    content: str


AnalysisResult = Annotated[
    Union[IssueAnalysis, PRReview, CIAnalysis, TriageResult, DocumentationResult],
    Field(discriminator="task"),
]


RESULT_TYPES = {
    AnalysisTask.ISSUE_ANALYSIS: IssueAnalysis,
    AnalysisTask.PR_REVIEW: PRReview,
    AnalysisTask.CI_FAILURE: CIAnalysis,
    AnalysisTask.TRIAGE: TriageResult,
    AnalysisTask.DOCUMENTATION: DocumentationResult,
}
