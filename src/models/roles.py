"""Role compliance models."""

from typing import Optional

from pydantic import BaseModel, Field

from src.models.enums import IssueStatus, Role, Severity, ViolationSeverity


class PreviousRoundSummary(BaseModel):
    """What a prior round did, as seen by the role checks."""

    round: int
    role: Role
    issues_raised: list[str] = Field(default_factory=list)
    issues_challenged: list[str] = Field(default_factory=list)
    issues_resolved: list[str] = Field(default_factory=list)


class ExistingIssueSummary(BaseModel):
    """An issue already tracked by the session."""

    id: str
    severity: Severity
    status: IssueStatus
    raised_by: Role
    challenged_by: Optional[Role] = None


class RoleContext(BaseModel):
    """Session facts handed to every validation check."""

    session_id: str
    current_round: int
    previous_rounds: list[PreviousRoundSummary] = Field(default_factory=list)
    existing_issues: list[ExistingIssueSummary] = Field(default_factory=list)
    target_files: list[str] = Field(default_factory=list)

    def last_round_by(self, role: Role) -> Optional[PreviousRoundSummary]:
        for summary in reversed(self.previous_rounds):
            if summary.role == role:
                return summary
        return None


class CheckResult(BaseModel):
    """Outcome of a single validation check."""

    passed: bool
    message: str
    details: list[str] = Field(default_factory=list)


class RoleViolation(BaseModel):
    """A compliance finding that costs score."""

    criterion_id: str
    severity: ViolationSeverity
    message: str
    evidence: Optional[str] = None
    fix: Optional[str] = None


class RoleWarning(BaseModel):
    """A softer compliance finding."""

    type: str
    message: str
    suggestion: str


class RoleComplianceResult(BaseModel):
    """How well one round followed its role's rules."""

    role: Role
    round: int
    is_compliant: bool
    score: int = Field(..., ge=0, le=100)
    violations: list[RoleViolation] = Field(default_factory=list)
    warnings: list[RoleWarning] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)

    @property
    def error_count(self) -> int:
        return sum(1 for v in self.violations if v.severity == ViolationSeverity.ERROR)


class RoleAlternation(BaseModel):
    """Which role is due next and who has spoken so far."""

    expected_role: Role = Role.VERIFIER
    next_role: Role = Role.CRITIC
    history: list[tuple[Role, int]] = Field(default_factory=list)
