"""Coverage, intervention and ripple-effect models used by the mediator."""

from typing import Optional

from pydantic import BaseModel, Field

from src.models.enums import (
    ImpactType,
    Importance,
    InterventionSeverity,
    InterventionType,
)


class CoverageDetail(BaseModel):
    """Per-file coverage gathered from round outputs."""

    path: str
    functions_total: int = 0
    functions_verified: list[str] = Field(default_factory=list)
    lines_mentioned: list[int] = Field(default_factory=list)
    last_verified_round: int = 0


class VerificationCoverage(BaseModel):
    """Which files the reviewers have looked at so far."""

    total_files: int = 0
    verified_files: set[str] = Field(default_factory=set)
    partially_verified: dict[str, CoverageDetail] = Field(default_factory=dict)
    unverified_critical: list[str] = Field(default_factory=list)

    @property
    def coverage_rate(self) -> float:
        if self.total_files == 0:
            return 0.0
        return len(self.verified_files) / self.total_files


class MissedCode(BaseModel):
    """A dependency the reviewer should have looked at."""

    file: str
    functions: list[str] = Field(default_factory=list)
    lines: list[int] = Field(default_factory=list)
    reason: str
    importance: Importance


class Intervention(BaseModel):
    """One structured advisory signal emitted by the mediator."""

    type: InterventionType
    severity: InterventionSeverity
    reason: str
    action: str
    round: Optional[int] = None
    affected_files: list[str] = Field(default_factory=list)
    missed_code: list[MissedCode] = Field(default_factory=list)
    suggested_checks: list[str] = Field(default_factory=list)
    related_issues: list[str] = Field(default_factory=list)


class AffectedFile(BaseModel):
    """A file reached by a change, with how far away it is."""

    path: str
    depth: float
    affected_functions: list[str] = Field(default_factory=list)
    impact_type: ImpactType
    reason: str


class RippleEffect(BaseModel):
    """Files that may break when ``changed_file`` changes."""

    changed_file: str
    changed_function: Optional[str] = None
    affected_files: list[AffectedFile]
    depth: float
    total_affected: int


class CoverageSummary(BaseModel):
    """Serializable coverage numbers."""

    total_files: int
    verified_files: int
    coverage_rate: str
    unverified_critical: int
