"""Session, round, issue and checkpoint models."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from src.models.enums import (
    FileLayer,
    IssueCategory,
    IssueStatus,
    Role,
    SessionStatus,
    Severity,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IssueDraft(BaseModel):
    """An issue as submitted with a round, before the store tracks it."""

    id: str = Field(..., min_length=1, description="Issue ID, e.g. SEC-01")
    category: IssueCategory
    severity: Severity
    summary: str = Field(..., description="One-line summary")
    location: str = Field(default="", description="file:line")
    description: str = ""
    evidence: str = ""


class Issue(IssueDraft):
    """A tracked finding with a category/severity/status lifecycle."""

    raised_by: Role
    raised_in_round: int = Field(..., ge=1)
    status: IssueStatus = IssueStatus.RAISED
    challenged_in_round: Optional[int] = None
    resolved_in_round: Optional[int] = None
    resolution: Optional[str] = None

    @model_validator(mode="after")
    def _resolved_round_only_when_resolved(self) -> "Issue":
        if self.status != IssueStatus.RESOLVED:
            self.resolved_in_round = None
        return self

    @property
    def is_open(self) -> bool:
        return self.status != IssueStatus.RESOLVED

    @property
    def file(self) -> str:
        """File part of the ``file:line`` location."""
        return self.location.split(":", 1)[0].strip()


class FileContext(BaseModel):
    """A file known to the verification context."""

    path: str
    layer: FileLayer = FileLayer.BASE
    added_in_round: Optional[int] = None
    dependencies: list[str] = Field(default_factory=list)


class Round(BaseModel):
    """A single Verifier or Critic turn."""

    number: int = Field(..., ge=1)
    role: Role
    input: str = Field(default="", description="Context summary given to the agent")
    output: str = ""
    issues_raised: list[str] = Field(default_factory=list)
    issues_resolved: list[str] = Field(default_factory=list)
    context_expanded: bool = False
    new_files_discovered: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)


class SessionSnapshot(BaseModel):
    """Deep copy of the mutable parts of a session."""

    status: SessionStatus
    current_round: int
    context: dict[str, FileContext]
    rounds: list[Round]
    issues: list[Issue]


class Checkpoint(BaseModel):
    """Rollback point tagged with the round it was taken at."""

    round_number: int = Field(..., ge=0)
    timestamp: datetime = Field(default_factory=_utcnow)
    snapshot: SessionSnapshot


class Session(BaseModel):
    """One bounded verification engagement over a target path."""

    id: str
    target: str
    requirements: str = ""
    working_dir: str = Field(default=".", description="Root that relative file paths resolve against")
    max_rounds: int = Field(default=10, ge=1)
    current_round: int = Field(default=0, ge=0)
    status: SessionStatus = SessionStatus.CREATED
    context: dict[str, FileContext] = Field(default_factory=dict)
    rounds: list[Round] = Field(default_factory=list)
    issues: list[Issue] = Field(default_factory=list)
    checkpoints: list[Checkpoint] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def get_issue(self, issue_id: str) -> Optional[Issue]:
        for issue in self.issues:
            if issue.id == issue_id:
                return issue
        return None

    def last_round_by(self, role: Role) -> Optional[Round]:
        for round_ in reversed(self.rounds):
            if round_.role == role:
                return round_
        return None

    def touch(self) -> None:
        self.updated_at = _utcnow()


class CategoryCoverage(BaseModel):
    """How many issues were raised in a category against its check total."""

    checked: int = 0
    total: int = 0


class ConvergenceStatus(BaseModel):
    """Outcome of a convergence evaluation."""

    is_converged: bool
    reason: str
    category_coverage: dict[IssueCategory, CategoryCoverage]
    unresolved_issues: int
    critical_unresolved: int
    rounds_without_new_issues: int


class IssuesSummary(BaseModel):
    """Issue counts by severity and by status."""

    total: int
    by_severity: dict[Severity, int]
    by_status: dict[IssueStatus, int]
