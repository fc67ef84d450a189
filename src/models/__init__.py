"""
Data Models & Schema Layer

Core Pydantic models for the Elenchus verification core.
All modules import from here - no circular dependencies allowed.
"""

from src.models.enums import (
    ArbiterAction,
    EdgeKind,
    ExportKind,
    FileLayer,
    ImpactType,
    Importance,
    InterventionSeverity,
    InterventionType,
    IssueFilter,
    IssueCategory,
    IssueStatus,
    Role,
    SessionStatus,
    Severity,
    Verdict,
    ViolationSeverity,
)
from src.models.session import (
    CategoryCoverage,
    Checkpoint,
    ConvergenceStatus,
    FileContext,
    Issue,
    IssueDraft,
    IssuesSummary,
    Round,
    Session,
    SessionSnapshot,
)
from src.models.graph import (
    ClassInfo,
    DependencyEdge,
    DependencyNode,
    ExportInfo,
    FunctionInfo,
    GraphStats,
    ImportInfo,
)
from src.models.mediator import (
    AffectedFile,
    CoverageDetail,
    CoverageSummary,
    Intervention,
    MissedCode,
    RippleEffect,
    VerificationCoverage,
)
from src.models.roles import (
    CheckResult,
    ExistingIssueSummary,
    PreviousRoundSummary,
    RoleAlternation,
    RoleComplianceResult,
    RoleContext,
    RoleViolation,
    RoleWarning,
)

__all__ = [
    # Enums
    "ArbiterAction",
    "EdgeKind",
    "ExportKind",
    "FileLayer",
    "ImpactType",
    "Importance",
    "InterventionSeverity",
    "InterventionType",
    "IssueFilter",
    "IssueCategory",
    "IssueStatus",
    "Role",
    "SessionStatus",
    "Severity",
    "Verdict",
    "ViolationSeverity",
    # Session
    "CategoryCoverage",
    "Checkpoint",
    "ConvergenceStatus",
    "FileContext",
    "Issue",
    "IssueDraft",
    "IssuesSummary",
    "Round",
    "Session",
    "SessionSnapshot",
    # Graph
    "ClassInfo",
    "DependencyEdge",
    "DependencyNode",
    "ExportInfo",
    "FunctionInfo",
    "GraphStats",
    "ImportInfo",
    # Mediator
    "AffectedFile",
    "CoverageDetail",
    "CoverageSummary",
    "Intervention",
    "MissedCode",
    "RippleEffect",
    "VerificationCoverage",
    # Roles
    "CheckResult",
    "ExistingIssueSummary",
    "PreviousRoundSummary",
    "RoleAlternation",
    "RoleComplianceResult",
    "RoleContext",
    "RoleViolation",
    "RoleWarning",
]
